import io
import struct

import mido
import pytest

from grooveplayer.timeline import DecodedMidi, MidiHeader, Note, Track


def make_midi(tracks, ppq=480, bpm=120.0, timesig=(4, 4), key=None, tempos=None):
    """
    Build SMF bytes. Each track is a dict:
      name, channel, program, notes [(tick, pitch, velocity, dur_ticks)],
      ccs [(tick, control, value)], extra [(tick, mido message)]
    """
    mid = mido.MidiFile(type=1, ticks_per_beat=ppq)

    conductor = []
    for tick, b in (tempos if tempos is not None else [(0, bpm)]):
        conductor.append((tick, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(b))))
    if timesig:
        conductor.append((0, mido.MetaMessage("time_signature", numerator=timesig[0], denominator=timesig[1])))
    if key:
        conductor.append((0, mido.MetaMessage("key_signature", key=key)))
    mid.tracks.append(_to_track(conductor))

    for t in tracks:
        ch = t.get("channel", 9)
        evs = []
        if t.get("name"):
            evs.append((0, mido.MetaMessage("track_name", name=t["name"])))
        if t.get("program") is not None:
            evs.append((0, mido.Message("program_change", program=t["program"], channel=ch)))
        for tick, pitch, vel, dur in t.get("notes", []):
            evs.append((tick, mido.Message("note_on", note=pitch, velocity=vel, channel=ch)))
            if dur is not None:
                evs.append((tick + dur, mido.Message("note_off", note=pitch, velocity=0, channel=ch)))
        for tick, cc, value in t.get("ccs", []):
            evs.append((tick, mido.Message("control_change", control=cc, value=value, channel=ch)))
        evs.extend(t.get("extra", []))
        mid.tracks.append(_to_track(evs))

    buf = io.BytesIO()
    mid.save(file=buf)
    return buf.getvalue()


def single_track(body):
    """Format 0 file around raw MTrk event bytes."""
    return struct.pack(">4sIHHH", b"MThd", 6, 0, 1, 480) + b"MTrk" + struct.pack(">I", len(body)) + body


def _to_track(events):
    # note_off before note_on on the same tick
    order = {"note_off": 0}
    events = sorted(events, key=lambda e: (e[0], order.get(e[1].type, 1)))
    track = mido.MidiTrack()
    last = 0
    for tick, msg in events:
        track.append(msg.copy(time=tick - last))
        last = tick
    return track


def two_bar_groove():
    """Kick/snare quarter notes over two 4/4 bars, 480 ppq."""
    notes = [(i * 480, 36 if i % 2 == 0 else 38, 100, 480) for i in range(8)]
    return make_midi([{"name": "Drums", "notes": notes}])


def decoded(*tracks, bpm=120.0):
    """DecodedMidi from lists of (time, duration, name[, velocity]) tuples, one list per track."""
    out = []
    for notes in tracks:
        tr = Track(name="t", channel=9)
        for n in notes:
            t, dur, name = n[:3]
            vel = n[3] if len(n) > 3 else 0.8
            tr.notes.append(Note(midi=36, name=name, velocity=vel, time=t, duration=dur))
        out.append(tr)
    return DecodedMidi(header=MidiHeader(ticks_per_beat=480, tempos=[(0, bpm)]), tracks=out)


class RecordingEngine:
    def __init__(self, reject=()):
        self.calls = []
        self.reject = set(reject)

    def trigger(self, note_name, duration, time, velocity):
        if note_name in self.reject:
            raise KeyError(note_name)
        self.calls.append((note_name, duration, time, velocity))

    @property
    def times(self):
        return [c[2] for c in self.calls]


class ManualClock:
    def __init__(self, t=0.0):
        self.t = t

    def __call__(self):
        return self.t

    def sleep(self, dt):
        self.t += dt


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def clock():
    return ManualClock()
