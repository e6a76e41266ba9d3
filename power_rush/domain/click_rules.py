"""Click timing validation for a single round."""
from collections import deque
from typing import Deque, Optional

from power_rush.models.dc_models import ClickRejection, ClickResult

HARD_FLOOR_MS = 50
MIN_CLICK_GAP_MS = 67
FAST_CLICK_LIMIT = 3
FAST_CLICK_PENALTY_STEP_MS = 1000
FAST_CLICK_PENALTY_MAX_MS = 5000
SPAM_GAP_PENALTY_MS = 1500
TPS_WINDOW_MS = 1000
TPS_HISTORY = 15
CAP_TPS = 15
TPS_TRIGGER_RATIO = 0.8
TPS_PENALTY_MS = 1500
TPS_HARD_PENALTY_MS = 3000


class ClickAuthenticator:
    """Per-round validator that rejects implausibly fast input.

    Times are milliseconds from a monotonic clock. A new instance is made
    for every round, so nothing leaks between rounds.
    """

    def __init__(self):
        self.click_times: Deque[float] = deque(maxlen=TPS_HISTORY)
        self.last_click_time: Optional[float] = None
        self.consecutive_fast_clicks = 0
        self.penalty_end_time = 0.0
        self._fast_penalty_active = False

    def is_penalized(self, now: float) -> bool:
        return now < self.penalty_end_time

    def clicks_per_second(self, now: float) -> int:
        """Accepted clicks within the trailing one-second window."""
        return sum(1 for t in self.click_times if now - t <= TPS_WINDOW_MS)

    def register_click(self, now: float) -> ClickResult:
        """Validate one click.

        Args:
            now (float): Click time in milliseconds

        Returns:
            ClickResult: accepted flag, plus the end of any penalty window
            imposed by this click
        """
        if now < self.penalty_end_time:
            return ClickResult(accepted=False, reason=ClickRejection.penalty)

        if self._fast_penalty_active:
            # penalty for a fast-click burst has run out
            self._fast_penalty_active = False
            self.consecutive_fast_clicks = 0

        if self.last_click_time is not None:
            gap = now - self.last_click_time

            if gap < HARD_FLOOR_MS:
                self.consecutive_fast_clicks += 1
                if self.consecutive_fast_clicks >= FAST_CLICK_LIMIT:
                    penalty = min(
                        FAST_CLICK_PENALTY_MAX_MS,
                        FAST_CLICK_PENALTY_STEP_MS * self.consecutive_fast_clicks,
                    )
                    self.penalty_end_time = now + penalty
                    self._fast_penalty_active = True
                    return ClickResult(
                        accepted=False,
                        penalized_until=self.penalty_end_time,
                        reason=ClickRejection.too_fast,
                    )
                return ClickResult(accepted=False, reason=ClickRejection.too_fast)

            self.consecutive_fast_clicks = 0

            if gap < MIN_CLICK_GAP_MS:
                self.penalty_end_time = now + SPAM_GAP_PENALTY_MS
                return ClickResult(
                    accepted=False,
                    penalized_until=self.penalty_end_time,
                    reason=ClickRejection.spam_gap,
                )

        self.click_times.append(now)
        self.last_click_time = now

        # the click that trips the rate check still counts; later ones wait out the penalty
        tps = self.clicks_per_second(now)
        if tps > CAP_TPS * TPS_TRIGGER_RATIO:
            penalty = TPS_HARD_PENALTY_MS if tps > CAP_TPS else TPS_PENALTY_MS
            self.penalty_end_time = now + penalty
            return ClickResult(accepted=True, penalized_until=self.penalty_end_time)

        return ClickResult(accepted=True)
