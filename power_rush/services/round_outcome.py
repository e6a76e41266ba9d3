import logging
from datetime import datetime
from uuid6 import uuid7

from power_rush.domain.prize_rules import PrizeAllocator
from power_rush.domain.random_sampler import RandomSampler
from power_rush.models.dc_models import RoundOutcome
from power_rush.models.schema_models import GameLogEntry, GameResult, Settings

prize_allocator = PrizeAllocator()


def _append_log(settings: Settings, entry: GameLogEntry) -> Settings:
    # newest first
    return settings.model_copy(update={"game_logs": [entry] + settings.game_logs})


def record_win(
    *,
    settings: Settings,
    player_name: str,
    device_id: str,
    battery_level: float,
    duration_seconds: int,
    now: datetime,
    sampler: RandomSampler,
) -> RoundOutcome:
    """Record a won round, drawing a prize number when the feature is on.

    The win is logged even when no number can be drawn.
    """
    log_id = str(uuid7())
    draw = prize_allocator.draw(
        settings, sampler, now, winner_label=player_name, game_log_id=log_id
    )
    entry = GameLogEntry(
        id=log_id,
        player_name=player_name,
        device_id=device_id,
        result=GameResult.win,
        prize_number=draw.prize_number,
        timestamp=now,
        battery_level=battery_level,
        duration_seconds=duration_seconds,
    )
    logging.info(f"Win recorded: player={player_name} device={device_id} prize={draw.prize_number}")
    return RoundOutcome(
        settings=_append_log(draw.settings, entry),
        log_entry=entry,
        prize_number=draw.prize_number,
    )


def record_loss(
    *,
    settings: Settings,
    player_name: str,
    device_id: str,
    battery_level: float,
    duration_seconds: int,
    now: datetime,
) -> RoundOutcome:
    entry = GameLogEntry(
        id=str(uuid7()),
        player_name=player_name,
        device_id=device_id,
        result=GameResult.loss,
        timestamp=now,
        battery_level=battery_level,
        duration_seconds=duration_seconds,
    )
    logging.info(f"Loss recorded: player={player_name} device={device_id} battery={battery_level:.0f}%")
    return RoundOutcome(settings=_append_log(settings, entry), log_entry=entry)
