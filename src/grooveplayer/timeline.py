from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Tuple

DEFAULT_TPB = 480
DEFAULT_BPM = 120.0

# --- decoded file ---

@dataclass(frozen=True)
class Note:
    midi: int              # 0..127
    name: str              # "C4" == 60
    velocity: float        # normalized 0.0..1.0 (raw / 127)
    time: float            # start, seconds
    duration: float        # seconds, > 0
    ticks: int = 0
    duration_ticks: int = 0
    channel: int = 0

    @property
    def end(self) -> float:
        return self.time + self.duration

    @property
    def end_ticks(self) -> int:
        return self.ticks + self.duration_ticks

@dataclass
class Track:
    name: Optional[str] = None
    channel: int = 0
    instrument: Optional[int] = None   # program number, None if no program change
    notes: List[Note] = field(default_factory=list)
    controllers: Dict[int, List[Tuple[float, int]]] = field(default_factory=dict)  # cc -> [(seconds, value)]

    @property
    def end_time(self) -> float:
        return max((n.end for n in self.notes), default=0.0)

    @property
    def end_ticks(self) -> int:
        return max((n.end_ticks for n in self.notes), default=0)

@dataclass
class MidiHeader:
    ticks_per_beat: int = DEFAULT_TPB
    tempos: List[Tuple[int, float]] = field(default_factory=list)              # (tick, bpm)
    timesigs: List[Tuple[int, int, int]] = field(default_factory=list)         # (tick, num, den)
    key_signatures: List[Tuple[int, str]] = field(default_factory=list)        # (tick, key)

    @property
    def bpm(self) -> Optional[float]:
        return self.tempos[0][1] if self.tempos else None

    @property
    def time_signature(self) -> Optional[Tuple[int, int]]:
        if not self.timesigs:
            return None
        _, num, den = self.timesigs[0]
        return (num, den)

    @property
    def key_signature(self) -> Optional[str]:
        return self.key_signatures[0][1] if self.key_signatures else None

@dataclass
class DecodedMidi:
    header: MidiHeader
    tracks: List[Track] = field(default_factory=list)

    @property
    def duration(self) -> float:
        """End time in seconds of the latest-ending note across all tracks."""
        return max((t.end_time for t in self.tracks), default=0.0)

    @property
    def duration_ticks(self) -> int:
        return max((t.end_ticks for t in self.tracks), default=0)

    @property
    def note_count(self) -> int:
        return sum(len(t.notes) for t in self.tracks)

    def iter_notes(self):
        """All notes, track by track, in insertion order."""
        for track in self.tracks:
            yield from track.notes
