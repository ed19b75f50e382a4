from __future__ import annotations

import typer
from typing import Optional

from blurclust.vis.debug import list_units, render_debug_png

app = typer.Typer(help="Blurred clustering debug visualization tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Debug HDF5 file written with --debug-output"),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Processing unit, e.g. E0_C0_P2 (default: all)"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (only with --unit)"),
):
    """Render the four clustering stages of one or all units to PNG."""
    units = [unit] if unit else list_units(h5_path)
    if not units:
        typer.echo(f"No debug images in {h5_path}")
        raise typer.Exit(code=1)
    for u in units:
        out_png = render_debug_png(h5_path, u, out_png=out if unit else None)
        typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
