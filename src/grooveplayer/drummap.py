from __future__ import annotations
from types import MappingProxyType
from typing import Dict, Mapping, Optional

# General MIDI percussion pitches as used by drum libraries
GM_DRUM_VOICES: Mapping[int, str] = MappingProxyType({
    36: "Kick",
    38: "Snare",
    40: "Snare (Rim)",
    42: "Hi-Hat Closed",
    43: "Floor Tom",
    44: "Hi-Hat Pedal",
    45: "Tom Low",
    46: "Hi-Hat Open",
    47: "Tom Mid",
    48: "Tom High",
    49: "Crash",
    51: "Ride",
    53: "Ride Bell",
    55: "Splash",
    57: "Crash 2",
})

def generic_label(pitch: int) -> str:
    return f"MIDI {pitch}"

def make_drum_map(overrides: Optional[Dict] = None,
                  base: Mapping[int, str] = GM_DRUM_VOICES) -> Mapping[int, str]:
    """Read-only copy of `base` with pitch -> name overrides (keys may be strings, as in YAML)."""
    merged = dict(base)
    for k, v in (overrides or {}).items():
        merged[int(k)] = str(v)
    return MappingProxyType(merged)
