from __future__ import annotations
from .schemas import BlurCfg, ClusterCfg, Config
from pathlib import Path
from typing import Any, Dict
import json

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    """Read and validate a TOML run configuration."""
    p = Path(path)
    data = tomllib.loads(p.read_text())
    return Config(**data)

def load_algorithm_config(path: str | Path) -> tuple[BlurCfg, ClusterCfg]:
    """
    Read only the [blur] and [cluster] tables, for library use where no
    [io] section exists.
    """
    data: Dict[str, Any] = tomllib.loads(Path(path).read_text())
    return BlurCfg(**data.get("blur", {})), ClusterCfg(**data.get("cluster", {}))

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()

def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
