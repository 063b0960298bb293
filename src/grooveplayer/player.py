# src/grooveplayer/player.py
from __future__ import annotations
import logging
import time
from typing import Callable, Optional

from .scheduler import Player, TransportState

logger = logging.getLogger(__name__)

def run_realtime(player: Player,
                 interval: float = 0.005,
                 poll: Optional[Callable[[], bool]] = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
    """
    Drive `player` from its clock until the session stops.
    poll() runs once per iteration (keyboard, file watching, ...); returning False stops playback.
    """
    while player.state is TransportState.PLAYING:
        player.tick()
        if poll is not None and poll() is False:
            player.stop()
            break
        sleep(interval)
    session = player.session
    if session is not None:
        logger.info("playback finished: %d triggers fired, %d rejected, %d loop(s)",
                    session.fired, session.rejected, session.cycle)
