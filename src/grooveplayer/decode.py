# src/grooveplayer/decode.py
"""
Standard MIDI File decoding.

`decode_midi` turns a raw byte buffer into a `DecodedMidi`: a header with the
merged tempo / time-signature / key-signature maps and one `Track` per MTrk
chunk. Note times are absolute seconds computed through the tempo map, note
names follow the "60 == C4" convention (see util.notes), velocities are
normalized to 0.0..1.0.

Decoding performs no I/O; `load_midi_file` is the only helper that touches
the filesystem.
"""
from __future__ import annotations
import io
import struct
from collections import defaultdict, deque
from pathlib import Path
from typing import Deque, Dict, List, Tuple

import mido
from mido.midifiles.meta import KeySignatureError

from .errors import MalformedMidiError
from .timeline import DecodedMidi, MidiHeader, Note, Track
from .util.notes import note_name
from .util.time import ticks_to_seconds_map, tempo_to_bpm

_HEADER_ID = b"MThd"
_TRACK_ID = b"MTrk"


def _check_chunks(data: bytes) -> None:
    """Validate the chunk layout so failures can be reported with a byte offset."""
    if data[:4] != _HEADER_ID:
        raise MalformedMidiError("missing MThd header chunk", 0)
    if len(data) < 14:
        raise MalformedMidiError("truncated header chunk", len(data))
    (hlen,) = struct.unpack(">I", data[4:8])
    if hlen < 6:
        raise MalformedMidiError(f"header chunk too short ({hlen} bytes)", 4)
    fmt, ntrks, division = struct.unpack(">HHH", data[8:14])
    if fmt > 2:
        raise MalformedMidiError(f"unsupported MIDI file format {fmt}", 8)
    if division & 0x8000:
        raise MalformedMidiError("SMPTE time division is not supported", 12)
    if division == 0:
        raise MalformedMidiError("ticks per quarter note must be positive", 12)

    pos = 8 + hlen
    found = 0
    while found < ntrks:
        if pos + 8 > len(data):
            raise MalformedMidiError(f"expected {ntrks} track chunks, found {found}", pos)
        cid = data[pos:pos + 4]
        (clen,) = struct.unpack(">I", data[pos + 4:pos + 8])
        if pos + 8 + clen > len(data):
            raise MalformedMidiError(f"truncated {cid.decode('latin-1')} chunk", pos)
        if cid == _TRACK_ID:
            found += 1
        pos += 8 + clen


def _read_conductor(mid: mido.MidiFile):
    """Collect tempo, time signature and key signature events of all tracks."""
    tempos: List[Tuple[int, float]] = []
    timesigs: List[Tuple[int, int, int]] = []
    keys: List[Tuple[int, str]] = []
    for mt in mid.tracks:
        tick = 0
        for msg in mt:
            tick += msg.time
            if msg.type == "set_tempo":
                if msg.tempo <= 0:
                    raise MalformedMidiError(f"invalid tempo of {msg.tempo} microseconds per beat")
                tempos.append((tick, tempo_to_bpm(msg.tempo)))
            elif msg.type == "time_signature":
                timesigs.append((tick, msg.numerator, msg.denominator))
            elif msg.type == "key_signature":
                keys.append((tick, msg.key))
    # stable: same tick keeps track order
    tempos.sort(key=lambda x: x[0])
    timesigs.sort(key=lambda x: x[0])
    keys.sort(key=lambda x: x[0])
    return tempos, timesigs, keys


def _read_track(mt: mido.MidiTrack, to_sec) -> Track:
    track = Track()
    channel = None
    # [start_tick, velocity, end_tick, pitch, channel]; list index == note-on order
    raw: List[list] = []
    open_notes: Dict[Tuple[int, int], Deque[list]] = defaultdict(deque)

    tick = 0
    for msg in mt:
        tick += msg.time
        if msg.is_meta:
            if msg.type == "track_name" and track.name is None:
                track.name = msg.name
            continue
        if channel is None and hasattr(msg, "channel"):
            channel = msg.channel

        if msg.type == "note_on" and msg.velocity > 0:
            entry = [tick, msg.velocity, None, msg.note, msg.channel]
            raw.append(entry)
            open_notes[(msg.channel, msg.note)].append(entry)
        elif msg.type in ("note_on", "note_off"):
            pending = open_notes.get((msg.channel, msg.note))
            if pending:
                pending.popleft()[2] = tick
        elif msg.type == "control_change":
            track.controllers.setdefault(msg.control, []).append((to_sec(tick), msg.value))
        elif msg.type == "program_change" and track.instrument is None:
            track.instrument = msg.program

    track.channel = channel if channel is not None else 0

    # unterminated notes end with the track
    for entry in raw:
        if entry[2] is None:
            entry[2] = tick

    order = sorted(range(len(raw)), key=lambda i: (raw[i][0], i))
    for i in order:
        start, vel, end, pitch, ch = raw[i]
        dur_ticks = max(1, end - start)
        t0 = to_sec(start)
        track.notes.append(Note(
            midi=pitch,
            name=note_name(pitch),
            velocity=vel / 127.0,
            time=t0,
            duration=to_sec(start + dur_ticks) - t0,
            ticks=start,
            duration_ticks=dur_ticks,
            channel=ch,
        ))
    return track


def decode_midi(data: bytes) -> DecodedMidi:
    """
    Decode a Standard MIDI File held in memory.
    Raises MalformedMidiError when the buffer is not a valid MIDI stream.
    """
    data = bytes(data)
    _check_chunks(data)
    try:
        mid = mido.MidiFile(file=io.BytesIO(data))
    except (OSError, EOFError, ValueError, KeyError, IndexError, TypeError, KeySignatureError) as exc:
        raise MalformedMidiError(f"could not decode MIDI data: {exc}") from exc

    tempos, timesigs, keys = _read_conductor(mid)
    header = MidiHeader(
        ticks_per_beat=mid.ticks_per_beat,
        tempos=tempos,
        timesigs=timesigs,
        key_signatures=keys,
    )
    to_sec = ticks_to_seconds_map(tempos, header.ticks_per_beat)
    tracks = [_read_track(mt, to_sec) for mt in mid.tracks]
    return DecodedMidi(header=header, tracks=tracks)


def load_midi_file(path) -> DecodedMidi:
    """Read a .mid file and decode it."""
    return decode_midi(Path(path).read_bytes())
