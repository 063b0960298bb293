# src/grooveplayer/scheduler.py
"""
Scheduler - tempo-locked, loopable playback of a DecodedMidi.

The timing policy is pure: `build_schedule` turns the decoded notes into a
sorted list of `ScheduledNote` (transport seconds from cycle start) and
`due_triggers` answers "which of these are due at position p". A
`PlaybackSession` applies that policy against whatever clock drives
`advance(now)`; it never sleeps and never owns a thread.

`Player` owns at most one session. Starting a new one stops the old one
first, so two sessions can never fire at the same time.

Usage:
    player = Player(sampler)
    player.start(midi, PlaybackConfig(loop=True))
    while player.state is TransportState.PLAYING:
        player.tick()          # fires every trigger due by time.monotonic()
        time.sleep(0.005)
"""

from __future__ import annotations
import logging
import time
import warnings
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional, Protocol, Tuple

from .errors import TransportError, TriggerRejectedWarning
from .timeline import DEFAULT_BPM, DecodedMidi

logger = logging.getLogger(__name__)


class TransportState(Enum):
    IDLE = auto()
    PLAYING = auto()
    STOPPED = auto()


class SampleEngine(Protocol):
    def trigger(self, note_name: str, duration: float, time: float, velocity: float) -> None:
        ...


@dataclass(frozen=True)
class PlaybackConfig:
    tempo: Optional[float] = None       # BPM override, None = file tempo
    loop: bool = True
    loop_end: Optional[float] = None    # file seconds, None = total duration


@dataclass(frozen=True)
class ScheduledNote:
    """A note armed on the transport timeline."""
    time: float          # transport seconds from cycle start
    name: str
    duration: float      # transport seconds
    velocity: float      # 0.0..1.0
    order: int           # track/note insertion order, tie-break


# ---------- pure policy ----------

def file_bpm(midi: DecodedMidi) -> float:
    return midi.header.bpm or DEFAULT_BPM


def tempo_scale(midi: DecodedMidi, tempo: Optional[float]) -> float:
    """Factor from file seconds to transport seconds."""
    if tempo is None:
        return 1.0
    if tempo <= 0:
        raise ValueError(f"tempo must be positive, got {tempo}")
    return file_bpm(midi) / float(tempo)


def build_schedule(midi: DecodedMidi, scale: float = 1.0,
                   loop_end: Optional[float] = None) -> List[ScheduledNote]:
    """
    Every note of every track, scaled to transport time and sorted by
    (time, insertion order). Notes starting at or after `loop_end` are dropped.
    """
    events = []
    for order, note in enumerate(midi.iter_notes()):
        t = note.time * scale
        if loop_end is not None and t >= loop_end:
            continue
        events.append(ScheduledNote(
            time=t,
            name=note.name,
            duration=note.duration * scale,
            velocity=note.velocity,
            order=order,
        ))
    events.sort(key=lambda e: (e.time, e.order))
    return events


def due_triggers(schedule: List[ScheduledNote], index: int,
                 position: float) -> Tuple[List[ScheduledNote], int]:
    """Entries from schedule[index:] due at `position`, plus the next index."""
    end = index
    while end < len(schedule) and schedule[end].time <= position:
        end += 1
    return schedule[index:end], end


# ---------- session ----------

LoopCallback = Callable[["PlaybackSession", int], None]
StopCallback = Callable[["PlaybackSession"], None]


class PlaybackSession:
    """One run of one DecodedMidi against a sample engine."""

    def __init__(self, midi: DecodedMidi, engine: SampleEngine,
                 config: PlaybackConfig = PlaybackConfig(), now: float = 0.0):
        self.midi = midi
        self.engine = engine
        self.config = config
        self.scale = tempo_scale(midi, config.tempo)
        self.bpm = float(config.tempo) if config.tempo is not None else file_bpm(midi)

        end = midi.duration if config.loop_end is None else float(config.loop_end)
        if end < 0:
            raise ValueError(f"loop end must not be negative, got {end}")
        self.loop_end = end * self.scale
        self.loop_enabled = bool(config.loop)
        self.schedule = build_schedule(midi, self.scale, self.loop_end)

        self.state = TransportState.PLAYING
        self.origin = float(now)
        self.cycle = 0
        self.fired = 0
        self.rejected = 0
        self._index = 0

        self.on_loop_callbacks: List[LoopCallback] = []
        self.on_stop_callbacks: List[StopCallback] = []

    @property
    def playing(self) -> bool:
        return self.state is TransportState.PLAYING

    @property
    def pending(self) -> int:
        """Triggers still armed in the current cycle."""
        return len(self.schedule) - self._index if self.playing else 0

    def cycle_start(self) -> float:
        return self.origin + self.cycle * self.loop_end

    def position(self, now: float) -> float:
        return now - self.cycle_start()

    def advance(self, now: float) -> int:
        """Fire everything due by `now`; returns the number of triggers attempted."""
        count = 0
        while self.playing:
            base = self.cycle_start()
            batch, self._index = due_triggers(self.schedule, self._index, now - base)
            for ev in batch:
                if not self.playing:
                    return count
                self._fire(ev, base + ev.time)
                count += 1
            if not self.playing or now - base < self.loop_end:
                break
            if self.loop_enabled and self.loop_end > 0:
                self.cycle += 1
                self._index = 0
                for cb in list(self.on_loop_callbacks):
                    cb(self, self.cycle)
            else:
                logger.debug("loop end reached after %d cycle(s), stopping", self.cycle + 1)
                self._halt()
        return count

    def _fire(self, ev: ScheduledNote, at: float):
        try:
            self.engine.trigger(ev.name, ev.duration, at, ev.velocity)
        except Exception as exc:
            self.rejected += 1
            warnings.warn(TriggerRejectedWarning(f"{ev.name} at {at:.3f}s rejected: {exc}"),
                          stacklevel=3)
        else:
            self.fired += 1

    def toggle_loop(self) -> bool:
        return self.set_loop(not self.loop_enabled)

    def set_loop(self, enabled: bool) -> bool:
        """Decides what the next loop-end crossing does; armed triggers are untouched."""
        if not self.playing:
            raise TransportError("loop can only be changed while playing")
        self.loop_enabled = bool(enabled)
        return self.loop_enabled

    def stop(self):
        """Cancel every pending trigger. Safe to call repeatedly and from a trigger."""
        if self.playing:
            self._halt()

    def _halt(self):
        self.state = TransportState.STOPPED
        self._index = len(self.schedule)
        for cb in list(self.on_stop_callbacks):
            cb(self)

    def on_loop(self, callback: LoopCallback):
        self.on_loop_callbacks.append(callback)
        return callback

    def on_stop(self, callback: StopCallback):
        self.on_stop_callbacks.append(callback)
        return callback


# ---------- single active session ----------

class Player:
    """Holds at most one PlaybackSession; start = stop old, then start new."""

    def __init__(self, engine: SampleEngine, clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.clock = clock
        self._session: Optional[PlaybackSession] = None

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def state(self) -> TransportState:
        if self._session is None:
            return TransportState.IDLE
        return self._session.state

    def start(self, midi: DecodedMidi, config: Optional[PlaybackConfig] = None,
              now: Optional[float] = None) -> PlaybackSession:
        """Arm every note; nothing fires before the next tick()."""
        self.stop()
        now = self.clock() if now is None else now
        self._session = PlaybackSession(midi, self.engine, config or PlaybackConfig(), now)
        logger.info("playing %d notes at %.1f BPM, loop %s, loop end %.3fs",
                    len(self._session.schedule), self._session.bpm,
                    "on" if self._session.loop_enabled else "off", self._session.loop_end)
        return self._session

    def tick(self, now: Optional[float] = None) -> int:
        if self._session is None:
            return 0
        return self._session.advance(self.clock() if now is None else now)

    def stop(self):
        if self._session is not None:
            self._session.stop()

    def toggle_loop(self) -> bool:
        if self._session is None:
            raise TransportError("nothing is playing")
        return self._session.toggle_loop()

    def restart(self, tempo: Optional[float] = None, now: Optional[float] = None) -> PlaybackSession:
        """Start the current material again, keeping the loop flag, at a new tempo."""
        if self._session is None:
            raise TransportError("nothing to restart")
        old = self._session
        config = PlaybackConfig(
            tempo=tempo if tempo is not None else old.config.tempo,
            loop=old.loop_enabled,
            loop_end=old.config.loop_end,
        )
        return self.start(old.midi, config, now)
