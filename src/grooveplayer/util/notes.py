from __future__ import annotations
import pretty_midi

def note_name(midi: int) -> str:
    """Scientific pitch name with sharps, 60 -> "C4", 36 -> "C2"."""
    return pretty_midi.note_number_to_name(int(midi))

def note_number(name: str) -> int:
    return int(pretty_midi.note_name_to_number(name))

def program_name(program: int) -> str:
    return pretty_midi.program_to_instrument_name(int(program))
