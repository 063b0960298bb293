# src/grooveplayer/errors.py
from __future__ import annotations
from typing import Optional


class GrooveError(Exception):
    """Base class for all grooveplayer errors."""


class MalformedMidiError(GrooveError):
    """The byte buffer is not a decodable Standard MIDI File."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)


class GenerationFailedError(GrooveError):
    """The external pattern generator failed or produced no MIDI file."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class SampleNotFoundError(GrooveError, KeyError):
    """No sample is mapped to the requested note name."""

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""


class TransportError(GrooveError):
    """Transport command issued in a state that does not allow it."""


class UnmappedVoiceWarning(UserWarning):
    """A pitch has no drum-voice name and falls back to a generic label."""


class TriggerRejectedWarning(UserWarning):
    """A single scheduled note could not be played."""
