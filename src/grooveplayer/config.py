# src/grooveplayer/config.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import copy
import logging
import yaml

from .drummap import make_drum_map
from .scheduler import PlaybackConfig

logger = logging.getLogger(__name__)

# package root: .../src/grooveplayer
PKG_ROOT = Path(__file__).resolve().parent
DEFAULT_CFG_PATH = PKG_ROOT / "config.default.yaml"
USER_CFG_PATH = Path.home() / ".config" / "grooveplayer" / "config.yaml"

MODES = ("jam", "write")

def _read_layer(path: Path) -> Dict[str, Any]:
    """One YAML layer; a missing, unreadable or non-mapping file counts as empty."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring config %s: %s", path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config %s: top level is %s, not a mapping", path, type(data).__name__)
        return {}
    return data

def _overlay(base: Dict[str, Any], layer: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of `base` with `layer` applied; sections merge key by key, everything else is replaced."""
    merged = copy.deepcopy(base)
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _overlay(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged

def load_config(
    user_path: Optional[Path] = None,
    default_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Loads the packaged defaults, merges the user overrides on top and returns the dict.
    """
    dpath = Path(default_path) if default_path else DEFAULT_CFG_PATH
    upath = Path(user_path) if user_path else USER_CFG_PATH

    cfg = _overlay(_read_layer(dpath), _read_layer(upath))

    cfg.setdefault("playback", {}).setdefault("mode", "jam")
    cfg.setdefault("library", {})
    cfg.setdefault("logging", {}).setdefault("level", "INFO")
    return cfg

def get_drum_map(cfg: Dict[str, Any]) -> Mapping[int, str]:
    """GM drum voices with the optional `drum_map` overrides applied."""
    return make_drum_map(cfg.get("drum_map") or {})

def get_playback_config(
    cfg: Dict[str, Any],
    mode: Optional[str] = None,
    tempo: Optional[float] = None,
    loop: Optional[bool] = None,
    loop_end: Optional[float] = None,
) -> PlaybackConfig:
    """
    jam mode loops by default, write mode plays once. Explicit arguments win.
    """
    pb = cfg.get("playback", {}) or {}
    mode = (mode or pb.get("mode") or "jam").lower()
    if mode not in MODES:
        raise ValueError(f"unknown playback mode '{mode}' (expected one of {', '.join(MODES)})")
    if loop is None:
        loop = mode == "jam"
    return PlaybackConfig(tempo=tempo, loop=loop, loop_end=loop_end)
