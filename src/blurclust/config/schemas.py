from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, Dict, List, Any

class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose
    progress: bool = True

    # Limits
    max_events: Optional[int] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("max_events")
    def _max_events_nonneg(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("max_events must be >= 0")
        return v

class IOCfg(BaseModel):
    """
    Hit source description.

    TOML:

    [io]
    input_path   = "..."
    input_format = "csv"         # "csv" | "hdf5"

    [io.adapter]
    wire = "wire"                # column-name overrides
    """

    input_path: str
    input_format: Literal["csv", "hdf5"] = "csv"

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=dict)

class GeometryCfg(BaseModel):
    """
    Minimal detector description used for the global wire coordinate.

    TOML:

    [geometry]
    readout_window_size = 4492

    [geometry.nwires]
    0 = 400
    1 = 400
    2 = 480

    [geometry.tpc_blocks]   # optional, TPC -> wire block
    0 = 0
    1 = 0
    """

    readout_window_size: int = 4492
    nwires: Dict[int, int] = Field(default_factory=dict)
    tpc_blocks: Optional[Dict[int, int]] = None

    @field_validator("readout_window_size")
    def _window_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("readout_window_size must be positive")
        return v

class BlurCfg(BaseModel):
    """
    Gaussian blurring of the hit image.

    Setting both sigma_wire and sigma_tick to 0 disables the blur.
    """

    blur_wire: int = 6
    blur_tick: int = 12
    sigma_wire: float = 4.0
    sigma_tick: float = 6.0
    tick_width_rescale: float = 30.0
    max_tick_width_scale: int = 5
    kernels: List[int] = [1, 2, 3, 4, 5]

    @field_validator("blur_wire", "blur_tick")
    def _radius_nonneg(cls, v: int) -> int:
        if v < 0:
            raise ValueError("blur radii must be >= 0")
        return v

    @field_validator("sigma_wire", "sigma_tick")
    def _sigma_nonneg(cls, v: float) -> float:
        if v < 0:
            raise ValueError("blur sigmas must be >= 0")
        return v

    @field_validator("tick_width_rescale")
    def _rescale_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("tick_width_rescale must be > 0")
        return v

    @field_validator("max_tick_width_scale")
    def _ceiling_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_tick_width_scale must be >= 1")
        return v

    @field_validator("kernels")
    def _kernels_have_one(cls, v: List[int]) -> List[int]:
        if 1 not in v:
            raise ValueError("kernels requires '1' to be present")
        if any(k < 1 for k in v):
            raise ValueError("kernels must all be >= 1")
        return sorted(set(v))

class ClusterCfg(BaseModel):
    cluster_wire_distance: int = 2
    cluster_tick_distance: int = 2
    neighbours_threshold: int = 4
    min_neighbours: int = 1
    min_size: int = 2
    min_seed: float = 0.1
    time_threshold: float = 500.0
    charge_threshold: float = 0.07

class ClusteringCfg(BaseModel):
    """
    Algorithm parameters only; everything a BlurredClustering instance needs.
    """

    blur: BlurCfg = Field(default_factory=BlurCfg)
    cluster: ClusterCfg = Field(default_factory=ClusterCfg)

class VisCfg(BaseModel):
    # HDF5 file receiving the per-plane stage images; None disables debug output
    debug_output: Optional[str] = None
    export_png: bool = True


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    geometry: GeometryCfg = Field(default_factory=GeometryCfg)
    clustering: ClusteringCfg = Field(default_factory=ClusteringCfg)
    vis: VisCfg = Field(default_factory=VisCfg)
