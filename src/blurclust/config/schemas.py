from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional


class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose
    progress: bool = True

    # Group hits per (cryostat, plane) across TPCs; False keeps each TPC separate
    global_tpc_recon: bool = True

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v


class IOCfg(BaseModel):
    """
    I/O paths.

    TOML:

    [io]
    input_path  = "hits.csv"     # .csv | .h5 / .hdf5
    output_path = "clusters.h5"
    """

    input_path: str
    output_path: str


class DetectorCfg(BaseModel):
    """
    Wire-plane layout used to build global wire numbers.

    TOML:

    [detector]
    n_wires = 480
    readout_window_size = 4492
    tpc_blocks = [[0, 1], [2, 3, 4, 5], [6, 7]]
    """

    n_wires: int = 480
    readout_window_size: int = 4492
    tpc_blocks: List[List[int]] = Field(default_factory=lambda: [[0, 1], [2, 3, 4, 5], [6, 7]])

    @field_validator("n_wires", "readout_window_size")
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class BlurCfg(BaseModel):
    """
    Image blurring: unscaled radii/sigmas (scaled by the fitted direction),
    and the per-hit tick-width kernel selection.
    """

    blur_wire: int = 6
    blur_tick: int = 12
    sigma_wire: float = 4.0
    sigma_tick: float = 6.0
    tick_width_rescale: float = 2.0
    max_tick_width_scale: int = 5
    kernels: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])

    @field_validator("blur_wire", "blur_tick", "sigma_wire", "sigma_tick")
    def _non_negative(cls, v):
        if v < 0:
            raise ValueError("blur radii and sigmas must be >= 0")
        return v

    @field_validator("tick_width_rescale")
    def _rescale_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("tick_width_rescale must be > 0")
        return v

    @field_validator("max_tick_width_scale")
    def _max_scale(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_tick_width_scale must be >= 1")
        return v

    @field_validator("kernels")
    def _kernels_contain_one(cls, v: List[int]) -> List[int]:
        if 1 not in v:
            raise ValueError("kernels requires '1' to be present")
        if any(k < 1 for k in v):
            raise ValueError("kernel multipliers must be >= 1")
        return v


class ClusterCfg(BaseModel):
    """
    Seeded growth on the blurred image and the repair passes that follow it.
    """

    cluster_wire_distance: int = 2
    cluster_tick_distance: int = 2
    neighbours_threshold: int = 0
    min_neighbours: int = 0
    min_size: int = 2
    min_seed: float = 0.1
    time_threshold: float = 500.0
    charge_threshold: float = 0.07

    @field_validator("cluster_wire_distance", "cluster_tick_distance",
                     "neighbours_threshold", "min_neighbours", "time_threshold",
                     "charge_threshold")
    def _non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("min_seed")
    def _min_seed_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("min_seed must be > 0")
        return v

    @field_validator("min_size")
    def _min_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_size must be >= 1")
        return v


class VisCfg(BaseModel):
    export_png: bool = False
    png_dir: Optional[str] = None  # defaults to <output stem>_png


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    detector: DetectorCfg = Field(default_factory=DetectorCfg)
    blur: BlurCfg = Field(default_factory=BlurCfg)
    cluster: ClusterCfg = Field(default_factory=ClusterCfg)
    vis: VisCfg = Field(default_factory=VisCfg)
