from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone

DEFAULT_UNIQUE_NAMES = ["kelinci", "buaya", "harimau", "singa", "elang"]


def as_aware(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GameResult(str, Enum):
    win = "win"
    loss = "loss"


class OperatingHours(BaseModel):
    start: str = Field(default="09:00", pattern=r"^\d{1,2}:\d{2}$")
    end: str = Field(default="21:00", pattern=r"^\d{1,2}:\d{2}$")

    class Config:
        frozen = True


class GameRules(BaseModel):
    max_plays_per_device: int = Field(default=10, alias="maxPlaysPerDevice")
    max_wins_per_device: int = Field(default=3, alias="maxWinsPerDevice")
    whitelisted_devices: List[str] = Field(default_factory=list, alias="whitelistedDevices")

    class Config:
        frozen = True
        populate_by_name = True


class PrizeHistoryEntry(BaseModel):
    number: int = Field(ge=1)
    timestamp: datetime
    player_name: Optional[str] = Field(default=None, alias="playerName")  # winner label
    game_log_id: Optional[str] = Field(default=None, alias="gameLogId")

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, value: datetime) -> datetime:
        return as_aware(value)

    class Config:
        frozen = True
        populate_by_name = True


class GameLogEntry(BaseModel):
    id: str
    player_name: str = Field(alias="playerName")
    device_id: str = Field(alias="deviceId")
    result: GameResult
    prize_number: Optional[int] = Field(default=None, alias="prizeNumber")
    timestamp: datetime
    battery_level: float = Field(ge=0, le=100, alias="batteryLevel")
    duration_seconds: int = Field(ge=0, alias="gameDuration")

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_aware(cls, value: datetime) -> datetime:
        # hosts persist "...Z" strings; older rows may be naive
        return as_aware(value)

    class Config:
        frozen = True
        populate_by_name = True


class Settings(BaseModel):
    """Host-owned game configuration and history.

    The round engine only ever reads this value and hands back modified
    copies; it is never changed in place.
    """

    duration: int = Field(default=25, gt=0)
    operating_hours: OperatingHours = Field(
        default_factory=OperatingHours, alias="operatingHours"
    )
    operating_hours_enabled: bool = Field(default=True, alias="operatingHoursEnabled")
    total_prizes: int = Field(default=100, ge=0, alias="totalPrizes")
    remaining_prizes: int = Field(default=75, ge=0, alias="currentPrizes")
    difficulty_multiplier: float = Field(
        default=50, ge=0, le=100, alias="difficultyMultiplier"
    )
    auto_difficulty_enabled: bool = Field(default=True, alias="autoDifficultyEnabled")
    auto_difficulty_max_limit: Optional[float] = Field(
        default=80, alias="autoDifficultyMaxLimit"
    )
    prize_numbers_enabled: bool = Field(default=True, alias="prizeNumbersEnabled")
    used_prize_numbers: List[int] = Field(default_factory=list, alias="usedPrizeNumbers")
    used_prize_history: List[PrizeHistoryEntry] = Field(
        default_factory=list, alias="usedPrizeHistory"
    )
    unique_names: List[str] = Field(
        default_factory=lambda: list(DEFAULT_UNIQUE_NAMES), alias="uniqueNames"
    )
    game_logs: List[GameLogEntry] = Field(default_factory=list, alias="gameLogs")
    game_rules: GameRules = Field(default_factory=GameRules, alias="gameRules")

    class Config:
        frozen = True
        populate_by_name = True
