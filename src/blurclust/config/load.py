from __future__ import annotations
from .schemas import Config
from pathlib import Path
import json

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    p = Path(path)
    data = tomllib.loads(p.read_text())
    return Config(**data)

def config_json(cfg: Config) -> str:
    """Compact JSON snapshot of the resolved config, for debug-file metadata."""
    return json.dumps(cfg.model_dump(), separators=(",", ":"), ensure_ascii=False)
