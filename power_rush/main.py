import argparse
import json
import logging
from datetime import datetime
from typing import List, Optional
import numpy as np

from power_rush.converter import DataConverter
from power_rush.domain.difficulty_rules import (
    apply_win_cooldown,
    click_bounds,
    click_target_center,
    difficulty_label,
    effective_difficulty,
    sample_required_clicks,
)
from power_rush.domain.random_sampler import RandomSampler
from power_rush.load_config import log_level, preview_rounds, random_seed
from power_rush.models.dc_models import ClickTargetPreview
from power_rush.models.schema_models import Settings

data_converter = DataConverter()


def preview_click_targets(
    settings: Settings,
    now: datetime,
    sampler: RandomSampler,
    rounds: int,
    last_win_at: Optional[datetime] = None,
) -> ClickTargetPreview:
    """Sample the click target many times to show what a round will feel like.

    Args:
        settings (Settings): Settings to preview
        now (datetime): Wall-clock time used for auto-difficulty
        sampler (RandomSampler): Random source
        rounds (int): Number of samples

    Returns:
        ClickTargetPreview: Bounds, centre and sample statistics
    """
    if rounds <= 0:
        raise ValueError("rounds must be positive")
    difficulty = apply_win_cooldown(
        effective_difficulty(settings, now).difficulty, last_win_at, now
    )
    samples = np.array(
        [sample_required_clicks(difficulty, settings.duration, sampler) for _ in range(rounds)]
    )
    n_min, n_max = click_bounds(settings.duration)
    p5, p50, p95 = np.percentile(samples, [5, 50, 95])
    return ClickTargetPreview(
        difficulty=difficulty,
        duration=settings.duration,
        rounds=rounds,
        n_min=n_min,
        n_max=n_max,
        center=click_target_center(difficulty, settings.duration),
        mean=float(samples.mean()),
        p5=float(p5),
        p50=float(p50),
        p95=float(p95),
    )


def load_settings(path: Optional[str], now: datetime) -> Settings:
    if path is None:
        return data_converter.default_settings()
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    return data_converter.settings_from_persisted(payload, now)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="power-rush")
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", help="sample click targets for the current settings")
    preview.add_argument("--settings", help="persisted settings JSON file")
    preview.add_argument("--rounds", type=int, default=preview_rounds)
    preview.add_argument("--seed", type=int, default=random_seed)
    preview.add_argument("--difficulty", type=float, help="override difficulty (disables auto)")
    preview.add_argument("--duration", type=int, help="override round duration in seconds")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=log_level)
    args = build_parser().parse_args(argv)
    now = datetime.now().astimezone()

    settings = load_settings(args.settings, now)
    update = {}
    if args.difficulty is not None:
        update["difficulty_multiplier"] = args.difficulty
        update["auto_difficulty_enabled"] = False
    if args.duration is not None:
        update["duration"] = args.duration
    if update:
        settings = Settings.model_validate({**settings.model_dump(), **update})

    preview = preview_click_targets(settings, now, RandomSampler(args.seed), args.rounds)
    logging.info(f"Preview finished: {preview.rounds} rounds")
    print(
        f"difficulty {preview.difficulty:.0f}% ({difficulty_label(preview.difficulty)}), "
        f"duration {preview.duration}s"
    )
    print(f"bounds [{preview.n_min}, {preview.n_max}], centre {preview.center:.1f}")
    print(
        f"mean {preview.mean:.1f}  p5 {preview.p5:.0f}  p50 {preview.p50:.0f}  p95 {preview.p95:.0f}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
