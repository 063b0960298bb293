from __future__ import annotations
import argparse, json, logging, pathlib, sys
from . import analyze
from .config import load_config, get_drum_map, get_playback_config, MODES
from .decode import load_midi_file
from .errors import GenerationFailedError, MalformedMidiError
from .generate import generate_pattern
from .library import DEFAULT_LIBRARY_ROOT
from .player import run_realtime
from .sampler import AudioOutput, build_sampler
from .scheduler import Player, TransportState

def _setup_logging(cfg):
    lc = cfg.get("logging", {})
    logging.basicConfig(level=str(lc.get("level", "INFO")).upper(),
                        format=lc.get("format", "%(levelname)s %(name)s: %(message)s"))
    logging.captureWarnings(True)

def _print_json(obj):
    print(json.dumps(obj, indent=2))

# ---------- keyboard ----------

class _Keys:
    """cbreak terminal for single-key transport control (no-op when stdin is not a tty)."""

    def __enter__(self):
        self.old = None
        if sys.stdin.isatty():
            import termios, tty
            self.old = termios.tcgetattr(sys.stdin)
            tty.setcbreak(sys.stdin.fileno())
        return self

    def __exit__(self, *exc):
        if self.old is not None:
            import termios
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, self.old)

    def read(self):
        if self.old is None:
            return None
        import select
        if select.select([sys.stdin], [], [], 0)[0]:
            return sys.stdin.read(1)
        return None

# ---------- commands ----------

def _cmd_analyze(args, cfg) -> int:
    drum_map = get_drum_map(cfg)
    results = []
    failed = False
    for f in args.files:
        path = pathlib.Path(f).expanduser().resolve()
        if not path.exists():
            print(f"[cli] ERROR: Input not found: {path}", file=sys.stderr)
            return 1
        try:
            results.append(analyze.analyze_file(path, drum_map).to_dict())
        except (MalformedMidiError, OSError) as e:
            print(f"[cli] ERROR: {path}: {e}", file=sys.stderr)
            results.append({"file_path": str(path), "error": str(e)})
            failed = True
    _print_json(results[0] if len(results) == 1 else results)
    return 2 if failed else 0

def _cmd_scan(args, cfg) -> int:
    lib = cfg.get("library", {})
    root = args.root or lib.get("root") or DEFAULT_LIBRARY_ROOT
    if not root or not pathlib.Path(root).expanduser().is_dir():
        print(f"[cli] ERROR: Library not found: {root}", file=sys.stderr)
        return 1
    root = str(pathlib.Path(root).expanduser())
    max_files = args.max_files or int(lib.get("max_files", 20))
    results = analyze.scan_library(root, max_files=max_files,
                                   max_depth=int(lib.get("max_depth", 5)),
                                   drum_map=get_drum_map(cfg))
    print(f"[cli] Found {len(results)} MIDI files under {root}", file=sys.stderr)
    for i, r in enumerate(results[:5], start=1):
        if "error" in r:
            print(f"[cli] {i}: {r['file_path']} ERROR {r['error']}", file=sys.stderr)
            continue
        bpm = r.get("bpm") or r.get("tempo") or "N/A"
        ts = "/".join(map(str, r["time_signature"])) if r["time_signature"] else "N/A"
        print(f"[cli] {i}: {r['file_name']}  library={r.get('library_name', 'N/A')}  bpm={bpm}  "
              f"section={r.get('section', 'N/A')}  variation={r.get('variation', 'N/A')}  "
              f"{r['duration']:.2f}s ({r['duration_bars']:.2f} bars)  ts={ts}  "
              f"notes={r['total_notes']}  drums={r['drum_notes']}", file=sys.stderr)
    _print_json(results)
    return 0

def _play(midi, cfg, config) -> int:
    pb = cfg.get("playback", {})
    step = float(pb.get("bpm_step", 10))
    min_bpm = float(pb.get("min_bpm", 20))

    sampler = build_sampler(cfg, get_drum_map(cfg))
    output = AudioOutput(sampler, block_size=int(cfg.get("audio", {}).get("block_size", 512)))
    player = Player(sampler)
    output.start()
    try:
        with _Keys() as keys:
            session = player.start(midi, config)
            print(f"[cli] playing {len(session.schedule)} notes at {session.bpm:.1f} BPM, "
                  f"loop {'on' if session.loop_enabled else 'off'}  (space/q stop, l loop, w/s BPM +/-)")

            def poll():
                key = keys.read()
                if player.state is not TransportState.PLAYING:
                    return True
                if key in (" ", "q"):
                    return False
                if key == "l":
                    on = player.toggle_loop()
                    print(f"[cli] loop {'on' if on else 'off'}")
                elif key in ("w", "s"):
                    bpm = player.session.bpm + (step if key == "w" else -step)
                    s = player.restart(tempo=max(min_bpm, bpm))
                    print(f"[cli] {s.bpm:.1f} BPM")
                return True

            run_realtime(player, interval=float(pb.get("tick_interval", 0.005)), poll=poll)
    except KeyboardInterrupt:
        player.stop()
    finally:
        output.stop()
    s = player.session
    if s is not None:
        print(f"[cli] stopped. fired={s.fired} rejected={s.rejected} loops={s.cycle}")
    return 0

def _cmd_play(args, cfg) -> int:
    if args.loop_end is not None and args.loop_end < 0:
        print("[cli] ERROR: --loop-end must not be negative", file=sys.stderr)
        return 1
    if args.bpm is not None and args.bpm <= 0:
        print("[cli] ERROR: --bpm must be positive", file=sys.stderr)
        return 1
    path = pathlib.Path(args.file).expanduser().resolve()
    if not path.exists():
        print(f"[cli] ERROR: Input not found: {path}", file=sys.stderr)
        return 1
    try:
        midi = load_midi_file(path)
    except (MalformedMidiError, OSError) as e:
        print(f"[cli] ERROR: {path}: {e}", file=sys.stderr)
        return 2
    config = get_playback_config(cfg, mode=args.mode, tempo=args.bpm, loop=args.loop, loop_end=args.loop_end)
    return _play(midi, cfg, config)

def _cmd_generate(args, cfg) -> int:
    try:
        result = generate_pattern(args.description, cfg)
    except GenerationFailedError as e:
        print(f"[cli] ERROR: {e}", file=sys.stderr)
        return 2
    print(f"[cli] generated -> {result.midi_path}")
    mode = (args.mode or cfg.get("playback", {}).get("mode", "jam")).lower()
    if not (args.play or mode == "jam"):
        return 0
    try:
        midi = load_midi_file(result.midi_path)
    except MalformedMidiError as e:
        print(f"[cli] ERROR: {result.midi_path}: {e}", file=sys.stderr)
        return 2
    return _play(midi, cfg, get_playback_config(cfg, mode=mode))

def main(argv=None):
    p = argparse.ArgumentParser(prog="grooveplayer", description="Drum MIDI analysis and looped playback")
    p.add_argument("--config", dest="config", default=None, help="YAML config (defaults applied if omitted)")
    sub = p.add_subparsers(dest="command", required=True)

    pa = sub.add_parser("analyze", help="Print a JSON metadata report per MIDI file")
    pa.add_argument("files", nargs="+", help="Input MIDI files (.mid)")

    ps = sub.add_parser("scan", help="Analyze the MIDI files of a groove library")
    ps.add_argument("root", nargs="?", default=None, help="Library root (default: library.root from config)")
    ps.add_argument("--max-files", type=int, default=None)

    pp = sub.add_parser("play", help="Play a MIDI file against the sample kit")
    pp.add_argument("file")
    pp.add_argument("--bpm", type=float, default=None, help="Tempo override (default: file tempo)")
    pp.add_argument("--mode", choices=MODES, default=None)
    pp.add_argument("--loop", dest="loop", action="store_true", default=None)
    pp.add_argument("--no-loop", dest="loop", action="store_false")
    pp.add_argument("--loop-end", type=float, default=None, help="Loop end in file seconds (default: duration)")

    pg = sub.add_parser("generate", help="Generate a pattern from a text description")
    pg.add_argument("description")
    pg.add_argument("--mode", choices=MODES, default=None)
    pg.add_argument("--play", action="store_true", help="Play the result even in write mode")

    args = p.parse_args(argv)
    cfg = load_config(args.config)
    _setup_logging(cfg)

    handlers = {"analyze": _cmd_analyze, "scan": _cmd_scan, "play": _cmd_play, "generate": _cmd_generate}
    sys.exit(handlers[args.command](args, cfg))

if __name__ == "__main__":
    main()
