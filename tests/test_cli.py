from pathlib import Path

from typer.testing import CliRunner

from blurclust.cli.viz import app as viz_app
from blurclust.io.adapters import HDF5Adapter
from blurclust.pipelines.core import app


runner = CliRunner()


def test_synth_then_run(tmp_path: Path):
    hits = tmp_path / "synth.h5"
    res = runner.invoke(app, ["synth", str(hits), "--events", "2", "--seed", "4"])
    assert res.exit_code == 0, res.output
    assert len(list(HDF5Adapter().iter_events(str(hits)))) == 2

    cfg = tmp_path / "cfg.toml"
    cfg.write_text(
        f"""
[run]
diagnostics_level = 0
progress = false

[io]
input_path = "{hits.as_posix()}"
input_format = "hdf5"

[clustering.cluster]
min_size = 3
min_seed = 1.0
charge_threshold = 0.2
time_threshold = 200.0
"""
    )
    debug = tmp_path / "dbg.h5"
    res = runner.invoke(app, ["run", str(cfg), "--debug-output", str(debug)])
    assert res.exit_code == 0, res.output
    assert "event 0 C0_P0" in res.output
    assert "event 1 C0_P0" in res.output

    out_png = tmp_path / "one.png"
    res = runner.invoke(viz_app, [str(debug), "--unit", "E0_C0_P0", "--out", str(out_png)])
    assert res.exit_code == 0, res.output
    assert out_png.exists()
