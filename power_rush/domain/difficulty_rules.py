"""Difficulty rules that are independent from the host and the event loop.

Turns the configured difficulty, the operating-hours window and the state
of the prize pool into a concrete click target for one round.

Rule of thumb:
- OK: math, clamping, sampling through an injected RandomSampler.
- Not OK: datetime.now(), global random state, logging configuration.
"""
import math
from datetime import datetime, timedelta
from typing import Optional, Tuple

from power_rush.domain.random_sampler import RandomSampler
from power_rush.models.dc_models import EffectiveDifficulty
from power_rush.models.schema_models import OperatingHours, Settings

DEFAULT_DURATION = 25
CAP_TPS = 15
R_LO = 2  # easy rate (taps per second)
R_HI = 12  # hard rate (taps per second)
GAMMA = 1.3

VARIANCE_MIN = 0.08  # at 100% difficulty
VARIANCE_MAX = 0.25  # at 0% difficulty

LUCKY_SPIKE_CHANCE = 0.05
HARD_SPIKE_CHANCE = 0.05
SPIKE_MULTIPLIER = 0.1

WIN_PREVENTION_DELAY_MS = 30_000
WIN_PREVENTION_BONUS = 30
WIN_PREVENTION_CAP = 95

AUTO_MIN_LIMIT = 30
AUTO_DEFAULT_MAX_LIMIT = 80
SCHEDULE_MAX_ADJUSTMENT = 25
OFF_HOURS_ADJUSTMENT = 15
URGENCY_MAX_ADJUSTMENT = 40

MINUTES_PER_DAY = 24 * 60

DIFFICULTY_LEVELS = [
    (20, "Very easy"),
    (40, "Easy"),
    (60, "Medium"),
    (80, "Hard"),
]


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


# ==============================================================================
# ==== Operating hours =========================================================
# ==============================================================================


def parse_clock(value: str) -> int:
    """Convert "HH:MM" to minutes after midnight."""
    try:
        hours, minutes = (int(part) for part in value.split(":"))
    except ValueError:
        raise ValueError(f"invalid clock value: {value!r}")
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"invalid clock value: {value!r}")
    return hours * 60 + minutes


def _window(hours: OperatingHours, now: datetime) -> Tuple[bool, float]:
    """Return (inside window, elapsed fraction) for a clock-time window.

    Windows whose end is before their start run past midnight.
    """
    start = parse_clock(hours.start)
    end = parse_clock(hours.end)
    current = now.hour * 60 + now.minute

    if end >= start:
        inside = start <= current <= end
        total = end - start
        elapsed = current - start
    else:
        inside = current >= start or current <= end
        total = MINUTES_PER_DAY - start + end
        elapsed = current - start if current >= start else current + MINUTES_PER_DAY - start

    if total == 0:
        return inside, 1.0
    return inside, clamp(elapsed / total, 0.0, 1.0)


def is_within_operating_hours(settings: Settings, now: datetime) -> bool:
    if not settings.operating_hours_enabled:
        return True
    inside, _ = _window(settings.operating_hours, now)
    return inside


def operating_time_progress(hours: OperatingHours, now: datetime) -> float:
    """Elapsed fraction of the operating window, clamped to [0, 1]."""
    _, progress = _window(hours, now)
    return progress


# ==============================================================================
# ==== Effective difficulty ====================================================
# ==============================================================================


def prize_depletion(settings: Settings) -> float:
    """Share of the prize pool already handed out (0 = untouched, 1 = empty)."""
    if settings.total_prizes <= 0:
        return 1.0
    used = settings.total_prizes - settings.remaining_prizes
    return clamp(used / settings.total_prizes, 0.0, 1.0)


def compute_auto_difficulty(settings: Settings, now: datetime) -> float:
    """Difficulty derived from time of day and prize depletion.

    Falls back to the manual difficulty when auto-difficulty is disabled.
    The result always lies in [30, max limit].
    """
    if not settings.auto_difficulty_enabled:
        return settings.difficulty_multiplier

    max_limit = settings.auto_difficulty_max_limit
    if max_limit is None:
        max_limit = AUTO_DEFAULT_MAX_LIMIT
    min_limit = AUTO_MIN_LIMIT
    prize_progress = prize_depletion(settings)
    difficulty = settings.difficulty_multiplier

    if settings.operating_hours_enabled:
        inside, time_progress = _window(settings.operating_hours, now)
        if inside:
            # positive when prizes go out slower than the clock runs
            deviation = time_progress - prize_progress
            difficulty = clamp(
                difficulty - deviation * SCHEDULE_MAX_ADJUSTMENT, min_limit, max_limit
            )
            if time_progress > 0.8 and prize_progress < 0.6:
                urgency = (time_progress - 0.8) / 0.2
                behind = 0.6 - prize_progress
                difficulty = max(
                    min_limit, difficulty - urgency * behind * URGENCY_MAX_ADJUSTMENT
                )
        elif prize_progress > 0.7:
            difficulty = min(max_limit, difficulty + OFF_HOURS_ADJUSTMENT)
        elif prize_progress < 0.3:
            difficulty = max(min_limit, difficulty - OFF_HOURS_ADJUSTMENT)
    else:
        remaining_ratio = 1.0 - prize_progress
        if remaining_ratio > 0.7:
            difficulty = max(min_limit, difficulty - 15)
        elif remaining_ratio > 0.4:
            difficulty = min(max_limit, difficulty + (0.7 - remaining_ratio) * 20)
        elif remaining_ratio > 0.15:
            difficulty = min(max_limit, difficulty + (0.4 - remaining_ratio) * 40)
        else:
            difficulty = min(max_limit, difficulty + 25)

        if prize_progress > 0.8:
            difficulty = min(max_limit, difficulty + 10)

    return float(round_half_up(clamp(difficulty, min_limit, max_limit)))


def effective_difficulty(settings: Settings, now: datetime) -> EffectiveDifficulty:
    """Difficulty that the next round will use, with a short label for display."""
    if not settings.auto_difficulty_enabled:
        return EffectiveDifficulty(
            difficulty=settings.difficulty_multiplier, is_auto=False, info="Manual"
        )

    difficulty = compute_auto_difficulty(settings, now)
    diff = difficulty - settings.difficulty_multiplier
    info = "Auto"
    if abs(diff) > 5:
        info = f"Auto (+{diff:.0f}%)" if diff > 0 else f"Auto ({diff:.0f}%)"
    return EffectiveDifficulty(difficulty=difficulty, is_auto=True, info=info)


def difficulty_label(difficulty: float) -> str:
    for threshold, label in DIFFICULTY_LEVELS:
        if difficulty <= threshold:
            return label
    return "Very hard"


def apply_win_cooldown(
    difficulty: float, last_win_at: Optional[datetime], now: datetime
) -> float:
    """Difficulty + 30, capped at 95, for a round started shortly after the previous win."""
    if last_win_at is None:
        return difficulty
    if now - last_win_at >= timedelta(milliseconds=WIN_PREVENTION_DELAY_MS):
        return difficulty
    return min(WIN_PREVENTION_CAP, difficulty + WIN_PREVENTION_BONUS)


def migrate_legacy_difficulty(value: float) -> float:
    """Convert a difficulty on the old 1-10 scale to a percentage."""
    return (value - 1) / 9 * 100


# ==============================================================================
# ==== Click target ============================================================
# ==============================================================================


def round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def rate_bounds() -> Tuple[float, float]:
    return R_LO, min(R_HI, CAP_TPS)


def click_bounds(duration: int) -> Tuple[int, int]:
    """Hard [n_min, n_max] range of required clicks for a round duration."""
    r_lo, r_hi = rate_bounds()
    return math.ceil(r_lo * duration), math.floor(r_hi * duration)


def click_target_center(difficulty: float, duration: int) -> float:
    """Centre n* of the click target: target rate times duration."""
    r_lo, r_hi = rate_bounds()
    x = clamp(difficulty, 0, 100) / 100
    r_target = r_lo + (r_hi - r_lo) * x**GAMMA
    return r_target * duration


def click_target_range(difficulty: float, duration: int) -> Tuple[int, float, int]:
    """Return (n_low, n*, n_high) before any spike is applied."""
    n_min, n_max = click_bounds(duration)
    x = clamp(difficulty, 0, 100) / 100
    n_star = click_target_center(difficulty, duration)
    eta = lerp(VARIANCE_MAX, VARIANCE_MIN, x)
    n_low = int(clamp(math.ceil(n_star * (1 - eta)), n_min, n_max))
    n_high = int(clamp(math.ceil(n_star * (1 + eta)), n_min, n_max))
    return n_low, n_star, n_high


def spike_multiplier(u: float) -> float:
    """Map a uniform draw to the lucky (x0.9), hard (x1.1) or neutral multiplier."""
    if u < LUCKY_SPIKE_CHANCE:
        return 1 - SPIKE_MULTIPLIER
    if u < LUCKY_SPIKE_CHANCE + HARD_SPIKE_CHANCE:
        return 1 + SPIKE_MULTIPLIER
    return 1.0


def sample_required_clicks(
    difficulty: float, duration: int, sampler: RandomSampler
) -> int:
    """Draw a click target for an already-resolved difficulty.

    Uses two calls into the sampler: one uniform draw for the spike and one
    triangular draw for the target itself.
    """
    if duration <= 0:
        raise ValueError("duration must be positive")
    n_min, n_max = click_bounds(duration)
    n_low, n_star, n_high = click_target_range(difficulty, duration)

    multiplier = spike_multiplier(sampler.random())
    if multiplier != 1.0:
        n_low = int(clamp(math.ceil(n_low * multiplier), n_min, n_max))
        n_high = int(clamp(math.ceil(n_high * multiplier), n_min, n_max))

    required = round_half_up(sampler.triangular(n_low, n_star, n_high))
    return int(clamp(required, n_min, n_max))


def compute_required_clicks(
    settings: Settings,
    last_win_at: Optional[datetime],
    now: datetime,
    sampler: RandomSampler,
) -> int:
    """Click target for the round about to start.

    Args:
        settings (Settings): Current settings snapshot
        last_win_at (Optional[datetime]): When this session last won, if ever
        now (datetime): Current wall-clock time
        sampler (RandomSampler): Random source for the spike and the draw

    Returns:
        int: Required clicks, within click_bounds(settings.duration)
    """
    if settings.auto_difficulty_enabled:
        difficulty = compute_auto_difficulty(settings, now)
    else:
        difficulty = settings.difficulty_multiplier
    difficulty = apply_win_cooldown(difficulty, last_win_at, now)
    duration = settings.duration or DEFAULT_DURATION
    return sample_required_clicks(difficulty, duration, sampler)


# ==============================================================================
# ==== Battery progress ========================================================
# ==============================================================================


def progress_level(taps: int, required: int, difficulty: float = 50) -> float:
    """Ease-out battery level (0-100) for the visual progress bar.

    Higher difficulty slows the bar down more near the end.
    """
    if required <= 0:
        return 100.0
    linear = min(1.0, taps / required)
    exponent = 1.3 + (difficulty / 100) * 1.0
    eased = 1 - (1 - linear) ** exponent
    return min(100.0, eased * 100)
