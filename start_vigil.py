"""
Vigil — Launcher
================
Replays a recorded landmark session through the Vigil engine and prints
the final presence and challenge state.

Usage:
  python start_vigil.py session.json
  python start_vigil.py session.npy --challenges blink smile --strategy motion
  python start_vigil.py session.json --every 3 --audit

Exit codes:
  0  every configured challenge completed
  1  session ended with challenges pending
  2  configuration error
"""

import argparse
import json
import logging
import os
import sys

# Add root
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from vigil_engine import DEFAULT_CONFIG, VigilEngine
from vigil_frame_source import RecordedFrameSource
from vigil_types import ConfigurationError
from vigil_utils_core import load_config, merge_config, setup_logger


def build_config(args) -> dict:
    """Translate CLI flags into nested config overrides."""
    config = load_config(args.config) if args.config else DEFAULT_CONFIG
    overrides = {"challenge": {}, "session": {}}

    if args.challenges:
        overrides["challenge"]["sequence"] = args.challenges
    if args.strategy:
        overrides["challenge"]["strategy"] = args.strategy
    if args.required is not None:
        overrides["challenge"]["required_detections"] = args.required
    if args.decay is not None:
        overrides["challenge"]["decay"] = args.decay
    if args.every is not None:
        overrides["session"]["process_every_n"] = args.every
    if args.delay is not None:
        overrides["session"]["advance_delay_frames"] = args.delay
    if args.no_auto_advance:
        overrides["session"]["auto_advance"] = False

    # Audit
    if args.audit:
        overrides["session"]["log_path"] = "logs/vigil_audit_session.jsonl"

    return merge_config(config, overrides)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Vigil liveness session replay")
    parser.add_argument("recording", help="Recorded landmark session (.json or .npy)")
    parser.add_argument("--config", type=str, default=None, help="Alternate config.yaml")
    parser.add_argument("--challenges", nargs="+", default=None,
                        help="Ordered challenges (blink smile turnLeft turnRight nod)")
    parser.add_argument("--strategy", choices=["geometry", "motion"], default=None,
                        help="Gesture predicate strategy")
    parser.add_argument("--every", type=int, default=None, help="Evaluate challenges every N frames")
    parser.add_argument("--required", type=float, default=None, help="Evidence needed per challenge")
    parser.add_argument("--decay", type=float, default=None, help="Evidence lost per non-matching frame")
    parser.add_argument("--delay", type=int, default=None, help="Frames to wait before the next challenge")
    parser.add_argument("--no-auto-advance", action="store_true", help="Do not start the next challenge automatically")
    parser.add_argument("--audit", action="store_true", help="Enable Audit Trail logging")
    parser.add_argument("--json", action="store_true", help="Print the final state as JSON")

    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        level = getattr(logging, str(config["logging"].get("level", "INFO")).upper(), logging.INFO)
        setup_logger("VigilEngine", level)

        engine = VigilEngine(config)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"[VIGIL] Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        source = RecordedFrameSource(args.recording)
    except (FileNotFoundError, ValueError) as e:
        print(f"[VIGIL] Cannot load recording: {e}", file=sys.stderr)
        engine.close()
        return 2

    print("=" * 60)
    print("  Vigil: Replaying session...")
    print(f"  Recording:  {args.recording}")
    print(f"  Challenges: {', '.join(c.value for c in engine.challenge_engine.challenges)}")
    print(f"  Strategy:   {engine.challenge_engine.predicate.name}")
    print(f"  Every:      {engine.process_every_n} frame(s)")
    print("=" * 60)

    try:
        with source:
            engine.run(source)
    except KeyboardInterrupt:
        print("\n[VIGIL] Interrupted by User.")
    finally:
        state = engine.get_state()
        engine.close()

    if args.json:
        print(json.dumps(state, indent=2))
    else:
        presence = state["presence"]
        challenge = state["challenge"]
        print(f"[VIGIL] Frames processed: {state['frame_index']}")
        print(f"[VIGIL] Face detected:    {presence['detected']}  box={presence['box']}")
        print(f"[VIGIL] Completed:        {', '.join(challenge['completed']) or '-'}")
        print(f"[VIGIL] Active:           {challenge['active'] or '-'} ({challenge['progress']}%)")
        print(f"[VIGIL] All completed:    {challenge['all_completed']}")

    return 0 if state["challenge"]["all_completed"] else 1


if __name__ == "__main__":
    sys.exit(main())
