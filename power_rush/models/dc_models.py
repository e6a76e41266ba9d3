from pydantic import BaseModel, Field
from enum import Enum
from typing import List, Optional

from power_rush.models.schema_models import GameLogEntry, GameRules, Settings


class RoundState(str, Enum):
    instructions = "instructions"
    countdown = "countdown"
    playing = "playing"
    result = "result"
    blocked = "blocked"


class ClickRejection(str, Enum):
    penalty = "penalty"  # still inside an active cooldown
    too_fast = "too_fast"  # below the hard floor between clicks
    spam_gap = "spam_gap"  # below the soft anti-spam gap
    key_held = "key_held"  # key-down auto-repeat
    not_playing = "not_playing"


class QuotaReason(str, Enum):
    max_plays = "max_plays"
    max_wins = "max_wins"


class PrizeEditError(str, Enum):
    out_of_range = "out_of_range"
    duplicate = "duplicate"
    not_found = "not_found"
    disabled = "disabled"
    no_prizes = "no_prizes"
    invalid = "invalid"


class StartRefusal(str, Enum):
    blocked = "blocked"
    no_prizes = "no_prizes"
    outside_hours = "outside_hours"
    wrong_state = "wrong_state"


class ClickResult(BaseModel):
    accepted: bool
    penalized_until: Optional[float] = None
    reason: Optional[ClickRejection] = None


class Eligibility(BaseModel):
    can_play: bool
    reason: Optional[str] = None
    code: Optional[QuotaReason] = None


class DeviceState(BaseModel):
    total_plays: int
    total_wins: int
    total_losses: int
    is_whitelisted: bool
    recent_games: List[GameLogEntry] = Field(default_factory=list)


class DrawResult(BaseModel):
    settings: Settings
    prize_number: Optional[int] = None
    error: Optional[PrizeEditError] = None


class PrizeEditResult(BaseModel):
    settings: Settings
    ok: bool
    error: Optional[PrizeEditError] = None
    message: Optional[str] = None


class SettingsEditResult(BaseModel):
    settings: Settings
    ok: bool
    message: Optional[str] = None


class RulesEditResult(BaseModel):
    rules: GameRules
    ok: bool
    message: Optional[str] = None


class EffectiveDifficulty(BaseModel):
    difficulty: float
    is_auto: bool
    info: str


class RoundOutcome(BaseModel):
    settings: Settings
    log_entry: GameLogEntry
    prize_number: Optional[int] = None


class StartResult(BaseModel):
    started: bool
    reason: Optional[StartRefusal] = None
    message: Optional[str] = None


class ClickTargetPreview(BaseModel):
    difficulty: float
    duration: int
    rounds: int
    n_min: int
    n_max: int
    center: float
    mean: float
    p5: float
    p50: float
    p95: float
