# src/grooveplayer/library.py
"""
Drum library catalog conventions.

Groove libraries lay their MIDI files out as
    <code>@<LIBRARY_NAME>/<bpm>-S<groove>@<SECTION>/variation_<nn>.mid
e.g. 1918@EZX_UK_POP/136-S055@BRIDGE/variation_01.mid.
Fields that do not match are simply left out.
"""
from __future__ import annotations
import re
from typing import Any, Dict

DEFAULT_LIBRARY_ROOT = "/Library/Application Support/EZDrummer/Midi"

_SPLIT_RE = re.compile(r"[\\/]")
_GROOVE_RE = re.compile(r"^(\d+)-S(\d+)@(.+)$")
_VARIATION_RE = re.compile(r"variation_(\d+)\.mid", re.IGNORECASE)


def parse_library_path(path: str) -> Dict[str, Any]:
    parts = [p for p in _SPLIT_RE.split(str(path)) if p]
    meta: Dict[str, Any] = {}

    lib = next((p for p in parts if "@" in p), None)
    if lib is not None:
        code, _, name = lib.partition("@")
        meta["library_code"] = code
        meta["library_name"] = name.replace("_", " ")

    for p in parts:
        m = _GROOVE_RE.match(p)
        if m:
            meta["bpm"] = int(m.group(1))
            meta["groove_number"] = m.group(2)
            meta["section"] = m.group(3).replace("_", " ")
            break

    if parts:
        m = _VARIATION_RE.search(parts[-1])
        if m:
            meta["variation"] = int(m.group(1))

    return meta
