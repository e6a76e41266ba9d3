from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
import numpy as np
from pydantic import BaseModel

from power_rush.models.schema_models import GameLogEntry, GameResult, as_aware

TOP_DEVICES_LIMIT = 10
HOURS_PER_DAY = 24


def _local(entry: GameLogEntry, now: datetime) -> datetime:
    """Entry time in the same zone as the reference time."""
    return entry.timestamp.astimezone(now.tzinfo)


class HourlyActivity(BaseModel):
    hour: int
    games: int
    wins: int


class DeviceActivity(BaseModel):
    device_id: str
    plays: int
    wins: int


class LogSummary(BaseModel):
    total_players: int
    total_games: int
    total_wins: int
    total_losses: int
    win_rate: int
    unique_devices: int
    today_games: int
    today_wins: int
    prize_distribution: List[int]
    hourly_activity: List[HourlyActivity]
    top_devices: List[DeviceActivity]


class LogStats:
    def summary(self, log: Sequence[GameLogEntry], now: datetime) -> LogSummary:
        """Aggregate the game log for the admin dashboard

        Args:
            log (Sequence[GameLogEntry]): Game log, newest first
            now (datetime): Reference time for "today"

        Returns:
            LogSummary: Totals, win rate, hourly activity and busiest devices
        """
        total_games = len(log)
        total_wins = sum(1 for entry in log if entry.result == GameResult.win)
        devices = {entry.device_id for entry in log}
        now = as_aware(now)
        today = [entry for entry in log if _local(entry, now).date() == now.date()]
        win_rate = round(total_wins / total_games * 100) if total_games > 0 else 0

        hours = np.array([_local(entry, now).hour for entry in log], dtype=np.int64)
        win_mask = np.array([entry.result == GameResult.win for entry in log], dtype=bool)
        games_per_hour = np.bincount(hours, minlength=HOURS_PER_DAY)
        wins_per_hour = np.bincount(hours[win_mask], minlength=HOURS_PER_DAY)

        plays = Counter(entry.device_id for entry in log)
        wins = Counter(entry.device_id for entry in log if entry.result == GameResult.win)
        # Counter.most_common keeps first-seen order among ties
        top_devices = [
            DeviceActivity(device_id=device_id, plays=count, wins=wins[device_id])
            for device_id, count in plays.most_common(TOP_DEVICES_LIMIT)
        ]

        return LogSummary(
            total_players=len(devices),
            total_games=total_games,
            total_wins=total_wins,
            total_losses=sum(1 for entry in log if entry.result == GameResult.loss),
            win_rate=win_rate,
            unique_devices=len(devices),
            today_games=len(today),
            today_wins=sum(1 for entry in today if entry.result == GameResult.win),
            prize_distribution=sorted(entry.prize_number for entry in log if entry.prize_number),
            hourly_activity=[
                HourlyActivity(hour=hour, games=int(games_per_hour[hour]), wins=int(wins_per_hour[hour]))
                for hour in range(HOURS_PER_DAY)
            ],
            top_devices=top_devices,
        )

    def filter(
        self,
        log: Sequence[GameLogEntry],
        now: datetime,
        result: str = "all",
        search: str = "",
        period: str = "all",
        device_id: Optional[str] = None,
    ) -> List[GameLogEntry]:
        """Filter the log the way the dashboard table does

        Args:
            result (str): "all", "wins" or "losses"
            search (str): Case-insensitive match on player name, device id or result
            period (str): "all", "today", "week" or "month"
            device_id (Optional[str]): Only entries from this device
        """
        now = as_aware(now)
        filtered = list(log)

        if result == "wins":
            filtered = [e for e in filtered if e.result == GameResult.win]
        elif result == "losses":
            filtered = [e for e in filtered if e.result == GameResult.loss]
        elif result != "all":
            raise ValueError(f"unknown result filter: {result}")

        if period == "today":
            filtered = [e for e in filtered if _local(e, now).date() == now.date()]
        elif period == "week":
            filtered = [e for e in filtered if e.timestamp >= now - timedelta(days=7)]
        elif period == "month":
            filtered = [e for e in filtered if e.timestamp >= now - timedelta(days=30)]
        elif period != "all":
            raise ValueError(f"unknown period filter: {period}")

        if search:
            needle = search.lower()
            filtered = [
                e
                for e in filtered
                if needle in e.player_name.lower()
                or needle in e.device_id.lower()
                or needle in e.result.value
            ]

        if device_id:
            filtered = [e for e in filtered if e.device_id == device_id]
        return filtered
