from __future__ import annotations
from .schemas import Config
from pathlib import Path
from typing import Any, Mapping
import json

from pydantic import ValidationError

from flashfinder.errors import ConfigurationError

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310


def parse_config(data: Mapping[str, Any]) -> Config:
    """Validate a config mapping; any rejection surfaces as ConfigurationError."""
    try:
        return Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration:\n{exc}") from exc


def load_config(path: str | Path) -> Config:
    p = Path(path)
    try:
        data = tomllib.loads(p.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"{p}: {exc}") from exc
    return parse_config(data)


def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()


def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
