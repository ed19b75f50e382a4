from pathlib import Path

import pytest
from pydantic import ValidationError

from blurclust.config.load import load_config
from blurclust.config.schemas import BlurCfg, Config, RunCfg


def test_kernels_must_contain_one():
    with pytest.raises(ValidationError):
        BlurCfg(kernels=[2, 3])
    with pytest.raises(ValidationError):
        BlurCfg(kernels=[1, 0])
    assert BlurCfg(kernels=[3, 1, 3]).kernels == [1, 3]


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        BlurCfg(tick_width_rescale=0.0)
    with pytest.raises(ValidationError):
        BlurCfg(max_tick_width_scale=0)
    with pytest.raises(ValidationError):
        RunCfg(diagnostics_level=3)
    with pytest.raises(ValidationError):
        RunCfg(max_events=-1)
    assert RunCfg(max_events=0).max_events == 0


def test_load_config_toml(tmp_path: Path):
    p = tmp_path / "cfg.toml"
    p.write_text(
        """
[run]
diagnostics_level = 0
progress = false

[io]
input_path = "hits.csv"

[geometry]
readout_window_size = 3200

[geometry.nwires]
0 = 400
2 = 480

[clustering.blur]
blur_wire = 4
kernels = [1, 2]
max_tick_width_scale = 2

[clustering.cluster]
min_size = 3
min_seed = 0.5
"""
    )
    cfg = load_config(p)
    assert isinstance(cfg, Config)
    assert cfg.io.input_format == "csv"
    assert cfg.geometry.readout_window_size == 3200
    assert cfg.geometry.nwires == {0: 400, 2: 480}
    assert cfg.clustering.blur.blur_wire == 4
    assert cfg.clustering.blur.kernels == [1, 2]
    assert cfg.clustering.cluster.min_size == 3
    assert cfg.clustering.cluster.charge_threshold == pytest.approx(0.07)
    assert cfg.vis.debug_output is None


def test_load_config_rejects_bad_kernels(tmp_path: Path):
    p = tmp_path / "bad.toml"
    p.write_text('[io]\ninput_path = "x.csv"\n\n[clustering.blur]\nkernels = [2, 4]\n')
    with pytest.raises(ValidationError):
        load_config(p)
