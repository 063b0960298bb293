from __future__ import annotations
from bisect import bisect_right
from typing import Callable, List, Tuple
import mido

from ..timeline import DEFAULT_BPM

def ticks_to_seconds_map(tempos: List[Tuple[int, float]], tpb: int) -> Callable[[int], float]:
    """
    Piecewise-constant tempo map: returns a tick -> seconds function.
    tempos: List[(tick, bpm)], need not be sorted. Empty list means 120 BPM.
    """
    tempos = sorted(tempos or [(0, DEFAULT_BPM)], key=lambda x: x[0])
    starts: List[int] = []
    segs: List[Tuple[int, float, float]] = []   # (start_tick, base_sec, sec_per_tick)
    last_tick = 0; last_sec = 0.0; last_bpm = tempos[0][1]
    for tick, bpm in tempos:
        if tick > last_tick:
            starts.append(last_tick)
            segs.append((last_tick, last_sec, 60.0 / (last_bpm * tpb)))
            last_sec += (tick - last_tick) * 60.0 / (last_bpm * tpb)
            last_tick = tick
        last_bpm = bpm
    starts.append(last_tick)
    segs.append((last_tick, last_sec, 60.0 / (last_bpm * tpb)))

    def to_sec(t: int) -> float:
        i = max(0, bisect_right(starts, t) - 1)
        s0, base, spt = segs[i]
        return base + (t - s0) * spt
    return to_sec

def tempo_to_bpm(micro_per_beat: int) -> float:
    return float(mido.tempo2bpm(micro_per_beat))
