# src/grooveplayer/analyze.py
from __future__ import annotations
import logging
import os
import warnings
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .decode import load_midi_file
from .drummap import GM_DRUM_VOICES, generic_label
from .errors import MalformedMidiError, UnmappedVoiceWarning
from .library import parse_library_path
from .timeline import DecodedMidi, Track
from .util.notes import program_name

logger = logging.getLogger(__name__)

DRUM_CHANNEL = 9
BEATS_PER_BAR = 4   # bars are counted in 4/4 regardless of the time signature

@dataclass
class NoteRange:
    min: int
    max: int
    min_name: str
    max_name: str

@dataclass
class TrackReport:
    index: int
    name: str
    channel: int
    instrument: str
    note_count: int
    note_range: Optional[NoteRange]
    control_changes: List[int] = field(default_factory=list)

@dataclass
class MidiReport:
    duration: float
    duration_bars: float
    ppq: int
    tempo: Optional[float]
    time_signature: Optional[Tuple[int, int]]
    key_signature: Optional[str]
    track_count: int
    total_notes: int
    track_details: List[TrackReport] = field(default_factory=list)
    drum_notes: Dict[str, int] = field(default_factory=dict)
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    path_meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; library path fields are flattened into the top level."""
        out: Dict[str, Any] = {}
        if self.file_path is not None:
            out["file_path"] = self.file_path
            out["file_name"] = self.file_name
        out.update(self.path_meta)
        d = asdict(self)
        for k in ("file_path", "file_name", "path_meta"):
            d.pop(k)
        if d["time_signature"] is not None:
            d["time_signature"] = list(d["time_signature"])
        out.update(d)
        return out

# ---------- extraction ----------

def _instrument_label(track: Track) -> str:
    if track.channel == DRUM_CHANNEL:
        return "Drum Kit"
    if track.instrument is None:
        return "N/A"
    return program_name(track.instrument)

def _note_range(track: Track) -> Optional[NoteRange]:
    if not track.notes:
        return None
    lo = min(track.notes, key=lambda n: n.midi)
    hi = max(track.notes, key=lambda n: n.midi)
    return NoteRange(min=lo.midi, max=hi.midi, min_name=lo.name, max_name=hi.name)

def drum_histogram(midi: DecodedMidi, drum_map: Mapping[int, str] = GM_DRUM_VOICES) -> Dict[str, int]:
    """Count every note of every track per drum-voice name."""
    counts: Dict[str, int] = {}
    unmapped = set()
    for note in midi.iter_notes():
        name = drum_map.get(note.midi)
        if name is None:
            unmapped.add(note.midi)
            name = generic_label(note.midi)
        counts[name] = counts.get(name, 0) + 1
    for pitch in sorted(unmapped):
        warnings.warn(f"no drum voice for pitch {pitch}, using '{generic_label(pitch)}'",
                      UnmappedVoiceWarning, stacklevel=2)
    return counts

def analyze_midi(midi: DecodedMidi, drum_map: Mapping[int, str] = GM_DRUM_VOICES) -> MidiReport:
    header = midi.header
    tracks = [
        TrackReport(
            index=i,
            name=tr.name or "Unnamed",
            channel=tr.channel,
            instrument=_instrument_label(tr),
            note_count=len(tr.notes),
            note_range=_note_range(tr),
            control_changes=sorted(tr.controllers),
        )
        for i, tr in enumerate(midi.tracks)
    ]
    return MidiReport(
        duration=midi.duration,
        duration_bars=midi.duration_ticks / header.ticks_per_beat / BEATS_PER_BAR,
        ppq=header.ticks_per_beat,
        tempo=header.bpm,
        time_signature=header.time_signature,
        key_signature=header.key_signature,
        track_count=len(midi.tracks),
        total_notes=midi.note_count,
        track_details=tracks,
        drum_notes=drum_histogram(midi, drum_map),
    )

# ---------- files & libraries ----------

def analyze_file(path, drum_map: Mapping[int, str] = GM_DRUM_VOICES) -> MidiReport:
    """Decode and analyze one file; raises MalformedMidiError / OSError."""
    path = Path(path)
    report = analyze_midi(load_midi_file(path), drum_map)
    report.file_path = str(path)
    report.file_name = path.name
    report.path_meta = parse_library_path(str(path))
    return report

def _iter_midi_files(root: str, max_depth: int):
    def walk(d: str, depth: int):
        if depth > max_depth:
            return
        try:
            entries = sorted(os.scandir(d), key=lambda e: e.name)
        except OSError as e:
            logger.error("cannot scan %s: %s", d, e)
            return
        for entry in entries:
            if entry.is_dir():
                yield from walk(entry.path, depth + 1)
            elif entry.name.lower().endswith(".mid"):
                yield entry.path
    yield from walk(root, 0)

def scan_library(root: str, max_files: int = 20, max_depth: int = 5,
                 drum_map: Mapping[int, str] = GM_DRUM_VOICES) -> List[Dict[str, Any]]:
    """
    Analyze up to `max_files` MIDI files below `root`.
    A file that fails to decode yields {"file_path", "error"} and the scan goes on.
    """
    results: List[Dict[str, Any]] = []
    for path in _iter_midi_files(root, max_depth):
        if len(results) >= max_files:
            break
        try:
            results.append(analyze_file(path, drum_map).to_dict())
        except (MalformedMidiError, OSError) as e:
            logger.warning("skipping %s: %s", path, e)
            results.append({"file_path": path, "error": str(e)})
    return results
