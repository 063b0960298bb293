# src/grooveplayer/generate.py
"""
Runs the external pattern generator.

The generator is a command line tool (default: `pydrums generate -d <text>`)
that writes a MIDI file into an output directory; the newest .mid file there
is taken as its result.
"""
from __future__ import annotations
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import GenerationFailedError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ["pydrums", "generate", "-d"]
DEFAULT_OUTPUT_DIR = "midi_output"

@dataclass
class GenerationResult:
    success: bool
    midi_path: str
    file_name: str
    output: str

def latest_midi_file(output_dir) -> Optional[Path]:
    d = Path(output_dir)
    if not d.is_dir():
        return None
    files = [p for p in d.iterdir() if p.is_file() and p.suffix.lower() == ".mid"]
    if not files:
        return None
    return max(files, key=lambda p: p.stat().st_mtime)

def _text(x) -> str:
    if x is None:
        return ""
    return x.decode(errors="replace") if isinstance(x, bytes) else str(x)

def generate_pattern(description: str,
                     cfg: Optional[Dict[str, Any]] = None,
                     command: Optional[Sequence[str]] = None,
                     cwd: Optional[str] = None,
                     output_dir: Optional[str] = None,
                     timeout: Optional[float] = None) -> GenerationResult:
    """
    Generate a pattern from a free-text description.
    Raises GenerationFailedError with the exit code and captured stderr on failure.
    """
    gen = (cfg or {}).get("generator", {}) or {}
    cmd: List[str] = list(command or gen.get("command") or DEFAULT_COMMAND) + [description]
    cwd = cwd or gen.get("cwd")
    out_dir = Path(output_dir or gen.get("output_dir") or DEFAULT_OUTPUT_DIR).expanduser()
    if not out_dir.is_absolute() and cwd:
        out_dir = Path(cwd) / out_dir
    timeout = timeout if timeout is not None else gen.get("timeout")

    logger.info("generating pattern: %s", description)
    try:
        proc = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise GenerationFailedError(f"generator not found: {cmd[0]}", None, str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise GenerationFailedError(f"{cmd[0]} timed out after {timeout}s", None, _text(e.stderr)) from e

    if proc.stdout:
        logger.debug("generator stdout: %s", proc.stdout.rstrip())
    if proc.returncode != 0:
        raise GenerationFailedError(
            f"{cmd[0]} exited with code {proc.returncode}: {proc.stderr.strip()}",
            proc.returncode, proc.stderr,
        )

    latest = latest_midi_file(out_dir)
    if latest is None:
        raise GenerationFailedError(f"No MIDI file was generated in {out_dir}", proc.returncode, proc.stderr)

    return GenerationResult(success=True, midi_path=str(latest), file_name=latest.name, output=proc.stdout)
