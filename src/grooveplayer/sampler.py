"""
Sampler - note-name keyed one-shot samples and audio output.

The scheduler talks to `Sampler.trigger(note_name, duration, time, velocity)`.
Samples are registered under note names ("C2", "D2", ...) and may be loaded
in a background thread; a trigger that arrives before a sample is loaded is
rejected like an unmapped one.

Usage:
    sampler = Sampler()
    sampler.load_async({"C2": "kits/acoustic/kick.wav"})
    output = AudioOutput(sampler)
    output.start()
    sampler.trigger("C2", 0.25, 0.0, 0.8)
"""

from __future__ import annotations
import logging
import os
import threading
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import numpy as np

from .drummap import GM_DRUM_VOICES
from .errors import SampleNotFoundError
from .util.notes import note_number

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100


@dataclass
class Sample:
    """A loaded mono sample."""
    name: str
    data: np.ndarray  # float32, shape (samples,)
    sample_rate: int

    @property
    def num_samples(self) -> int:
        return self.data.shape[0]

    @property
    def duration(self) -> float:
        return self.num_samples / self.sample_rate


@dataclass
class Voice:
    """A sample currently playing."""
    sample: Sample
    gain: float
    end: int            # last frame (exclusive) including release
    hold: int           # frame where the release fade starts
    release: int        # fade length in frames
    position: int = 0

    @property
    def done(self) -> bool:
        return self.position >= self.end


def _to_mono(data: np.ndarray) -> np.ndarray:
    if data.ndim > 1:
        data = data.mean(axis=1)
    return data.astype(np.float32)


def _resample(data: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """Linear resampling."""
    if src_rate == dst_rate or len(data) == 0:
        return data
    n_out = int(len(data) * dst_rate / src_rate)
    x_old = np.arange(len(data))
    x_new = np.linspace(0, len(data) - 1, n_out)
    return np.interp(x_new, x_old, data).astype(np.float32)


class Sampler:
    """Note-name keyed sample player, mixed in `process()` on the audio thread."""

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE, max_voices: int = 32,
                 release: float = 0.05):
        self.sample_rate = sample_rate
        self.max_voices = max(1, int(max_voices))
        self.release = release

        self._samples: Dict[str, Sample] = {}
        self._voices: List[Voice] = []
        self._lock = threading.Lock()
        self._loader: Optional[threading.Thread] = None

    # ---------- loading ----------

    def load_from_array(self, name: str, data: np.ndarray, sample_rate: Optional[int] = None):
        sr = sample_rate or self.sample_rate
        data = _resample(_to_mono(np.asarray(data)), sr, self.sample_rate)
        with self._lock:
            self._samples[name] = Sample(name=name, data=data, sample_rate=self.sample_rate)

    def load(self, name: str, path: str):
        """Load an audio file into a note slot. Raises on unreadable files."""
        import soundfile as sf
        data, sr = sf.read(path, dtype="float32", always_2d=False)
        self.load_from_array(name, data, sr)
        logger.debug("loaded '%s' from %s", name, path)

    def load_async(self, mapping: Mapping[str, str]) -> threading.Thread:
        """Load {note_name: path} in a background thread; failures are logged per file."""
        def run():
            for name, path in mapping.items():
                try:
                    self.load(name, path)
                except (OSError, RuntimeError, ValueError) as e:
                    logger.warning("could not load sample %s for %s: %s", path, name, e)
            logger.info("sample loading finished (%d slots)", len(self._samples))

        self._loader = threading.Thread(target=run, name="sample-loader", daemon=True)
        self._loader.start()
        return self._loader

    def wait_loaded(self, timeout: Optional[float] = None) -> bool:
        if self._loader is not None:
            self._loader.join(timeout)
            return not self._loader.is_alive()
        return True

    # ---------- playing ----------

    def trigger(self, note_name: str, duration: Optional[float] = None,
                time: Optional[float] = None, velocity: float = 1.0):
        """Start the sample mapped to `note_name`; it is released after `duration` seconds."""
        with self._lock:
            sample = self._samples.get(note_name)
            if sample is None:
                raise SampleNotFoundError(f"no sample mapped to {note_name}")

            release = int(self.release * self.sample_rate)
            if duration is None:
                hold = sample.num_samples
            else:
                hold = min(sample.num_samples, max(1, int(duration * self.sample_rate)))
            end = min(sample.num_samples, hold + release)

            if len(self._voices) >= self.max_voices:
                self._voices.pop(0)
            self._voices.append(Voice(sample=sample, gain=float(velocity),
                                      end=end, hold=hold, release=max(1, release)))

    def stop_all(self):
        with self._lock:
            self._voices.clear()

    def process(self, num_frames: int) -> np.ndarray:
        """Mix all voices into a stereo float32 block of shape (num_frames, 2)."""
        mono = np.zeros(num_frames, dtype=np.float32)
        with self._lock:
            for voice in self._voices:
                n = min(num_frames, voice.end - voice.position)
                if n <= 0:
                    continue
                idx = np.arange(voice.position, voice.position + n)
                env = np.clip(1.0 - (idx - voice.hold) / voice.release, 0.0, 1.0)
                mono[:n] += voice.sample.data[voice.position:voice.position + n] * env * voice.gain
                voice.position += n
            self._voices = [v for v in self._voices if not v.done]

        np.clip(mono, -1.0, 1.0, out=mono)
        return np.column_stack([mono, mono])

    @property
    def sample_names(self) -> List[str]:
        return list(self._samples.keys())

    @property
    def voice_count(self) -> int:
        return len(self._voices)


class AudioOutput:
    """Feeds a Sampler to the default output device through sounddevice."""

    def __init__(self, sampler: Sampler, block_size: int = 512):
        self.sampler = sampler
        self.block_size = block_size
        self._stream = None

    def start(self):
        import sounddevice as sd
        if self._stream is not None:
            return
        self._stream = sd.OutputStream(
            samplerate=self.sampler.sample_rate,
            blocksize=self.block_size,
            channels=2,
            dtype="float32",
            callback=self._callback,
        )
        self._stream.start()
        logger.info("audio started (sr=%d, buf=%d)", self.sampler.sample_rate, self.block_size)

    def stop(self):
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            logger.info("audio stopped")

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug("audio status: %s", status)
        outdata[:] = self.sampler.process(frames)


# ---------- placeholder kit ----------

def placeholder_sample(voice: str, sample_rate: int = DEFAULT_SAMPLE_RATE) -> np.ndarray:
    """A short one-shot roughly matching a drum voice, used when no kit file is configured."""
    v = voice.lower()
    rng = np.random.default_rng()

    def t(dur):
        return np.arange(int(sample_rate * dur)) / sample_rate

    if "kick" in v:
        x = t(0.35)
        freq = 110 * np.exp(-x * 10) + 42
        data = np.sin(2 * np.pi * np.cumsum(freq) / sample_rate) * np.exp(-x * 6)
    elif "snare" in v:
        x = t(0.25)
        data = (rng.standard_normal(len(x)) * 0.5 + np.sin(2 * np.pi * 180 * x) * 0.5) * np.exp(-x * 15)
    elif "hi-hat" in v:
        x = t(0.5 if "open" in v else 0.08)
        data = rng.standard_normal(len(x)) * np.exp(-x * (6 if "open" in v else 50)) * 0.35
    elif "tom" in v:
        base = 100 if "floor" in v or "low" in v else (150 if "mid" in v else 200)
        x = t(0.45)
        freq = base * 0.6 * np.exp(-x * 6) + base
        data = np.sin(2 * np.pi * np.cumsum(freq) / sample_rate) * np.exp(-x * 6)
    elif "crash" in v or "ride" in v or "splash" in v:
        x = t(1.2)
        data = rng.standard_normal(len(x)) * np.exp(-x * 3) * 0.3
    else:
        x = t(0.1)
        data = np.sin(2 * np.pi * 440 * x) * np.exp(-x * 30)
    return np.clip(data * 0.7, -1.0, 1.0).astype(np.float32)


def build_sampler(cfg: Dict, drum_map: Mapping[int, str] = GM_DRUM_VOICES) -> Sampler:
    """
    Sampler from the `audio` / `samples` config sections. Every mapped note
    gets a placeholder first; files found in samples.dir replace it in the background.
    """
    audio = cfg.get("audio", {}) or {}
    samples = cfg.get("samples", {}) or {}
    sampler = Sampler(
        sample_rate=int(audio.get("sample_rate", DEFAULT_SAMPLE_RATE)),
        max_voices=int(audio.get("max_voices", 32)),
        release=float(audio.get("release", 0.05)),
    )

    files: Dict[str, str] = {}
    kit_dir = samples.get("dir")
    for name, fname in (samples.get("map") or {}).items():
        voice = drum_map.get(note_number(name), name)
        sampler.load_from_array(name, placeholder_sample(voice, sampler.sample_rate))
        if kit_dir:
            path = os.path.join(os.path.expanduser(kit_dir), fname)
            if os.path.exists(path):
                files[name] = path
            else:
                logger.warning("sample file not found: %s", path)
    if files:
        sampler.load_async(files)
    return sampler

