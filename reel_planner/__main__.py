"""Command line interface for reel_planner."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys

import yaml

from .config import PlannerConfig, env_overrides, load_preset
from .errors import PlanningError
from .pipeline import PlannerContext, find_audio, plan_reel
from .validate import validate_args
from .vision import load_attributes


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan a Ken Burns style reel from a folder of photos")
    parser.add_argument("folder", help="Input folder with images")
    parser.add_argument("--preset", action="append", default=[], help="Path to YAML preset overriding defaults")
    parser.add_argument("--aspect", default="16:9", help="Target aspect, e.g. 16:9, 9:16, 1:1, 2.39:1")
    parser.add_argument("--pack", default="documentary", help="Motion pack (documentary, default, static)")
    parser.add_argument("--seed", default=None, help="Motion seed (integer or any string)")
    parser.add_argument("--fps", type=int, default=24)
    parser.add_argument("--order", help="JSON reply of the ordering service")
    parser.add_argument("--attributes", help="JSON/YAML file with per-image vision attributes")
    parser.add_argument("--audio", help="Audio file for beat alignment")
    parser.add_argument("--align-beat", action="store_true", help="Snap shot starts to detected beats")
    parser.add_argument("--bpm", type=int, default=None, help="Tempo for beat alignment when there is no audio")
    parser.add_argument("--target-duration", type=float, default=None, help="Override the planned length (s)")
    parser.add_argument("--cut-only", action="store_true", help="Hard cuts only (hinge hold is kept)")
    parser.add_argument("--confidence-threshold", type=float, default=0.55)
    parser.add_argument("--headroom-bias", type=float, default=0.075)
    parser.add_argument("--out", default=None, help="Output plan (.yaml or .json); stdout if omitted")
    parser.add_argument("--validate", action="store_true", help="Validate arguments and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    prelim, _ = parser.parse_known_args(argv)
    for path in prelim.preset:
        data = load_preset(path)
        if "motion_pack" in data:
            data["pack"] = data.pop("motion_pack")
        parser.set_defaults(**data)

    env = env_overrides()
    if "motion_pack" in env:
        env["pack"] = env.pop("motion_pack")
    parser.set_defaults(**{k: v for k, v in env.items() if k in ("pack", "fps", "seed")})
    args = parser.parse_args(argv)
    args.cache_size = env.get("cache_size", getattr(args, "cache_size", 2000))
    return args


def config_from_args(args: argparse.Namespace) -> PlannerConfig:
    return PlannerConfig().with_overrides(
        aspect=args.aspect,
        motion_pack=args.pack,
        seed=args.seed,
        fps=args.fps,
        cache_size=args.cache_size,
        confidence_threshold=args.confidence_threshold,
        headroom_bias=args.headroom_bias,
        target_duration=args.target_duration,
        cut_only=args.cut_only,
        align_beat=args.align_beat,
        bpm=args.bpm,
    )


def _read_order(path: str | None):
    if not path:
        return None
    with open(path, "r", encoding="utf8") as fh:
        return fh.read()


def write_plan(data: dict, out: str | None) -> None:
    if out and os.path.splitext(out)[1].lower() == ".json":
        text = json.dumps(data, indent=2)
    else:
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if out:
        with open(out, "w", encoding="utf8") as fh:
            fh.write(text)
        logging.info("plan written to %s", out)
    else:
        sys.stdout.write(text)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    errs = validate_args(args)
    if errs:
        for e in errs:
            print(f"validation error: {e}", file=sys.stderr)
        raise SystemExit(1)
    if args.validate:
        return

    cfg = config_from_args(args)
    attributes = load_attributes(args.attributes) if args.attributes else None
    audio_path = args.audio or find_audio(args.folder)
    if args.align_beat and not audio_path and not args.bpm:
        logging.warning("no audio or --bpm, planning without beat alignment")
    try:
        with PlannerContext(cfg) as ctx:
            plan = plan_reel(
                args.folder,
                order_response=_read_order(args.order),
                attributes=attributes,
                audio_path=audio_path,
                context=ctx,
            )
    except FileNotFoundError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except PlanningError as exc:
        print(f"planning error ({type(exc).__name__}): {exc}", file=sys.stderr)
        raise SystemExit(2)
    write_plan(plan.to_dict(), args.out)


if __name__ == "__main__":
    main()
