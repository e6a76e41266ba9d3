"""Prize pool rules: drawing numbers and admin corrections.

Every operation takes a Settings snapshot and returns a new one; the input
is never modified.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from power_rush.domain.random_sampler import RandomSampler
from power_rush.models.dc_models import DrawResult, PrizeEditError, PrizeEditResult
from power_rush.models.schema_models import PrizeHistoryEntry, Settings

ADMIN_MANUAL_LABEL = "Admin (Manual)"
ADMIN_SIMULATION_LABEL = "Admin (Simulation)"
LEGACY_LABEL = "Legacy"


def _millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def legacy_history(numbers: Sequence[int], now: datetime) -> List[PrizeHistoryEntry]:
    """History entries for a legacy number list, one minute apart and ending at now.

    The list order is kept: the first number gets the oldest timestamp.
    """
    count = len(numbers)
    return [
        PrizeHistoryEntry(
            number=number,
            timestamp=now - timedelta(minutes=count - index),
            player_name=LEGACY_LABEL,
            game_log_id=f"legacy-{number}",
        )
        for index, number in enumerate(numbers)
    ]


class PrizeAllocator:
    @staticmethod
    def used_numbers(settings: Settings) -> List[int]:
        """Numbers already handed out.

        History is authoritative when present; otherwise the legacy flat list
        is used.
        """
        if settings.used_prize_history:
            return [entry.number for entry in settings.used_prize_history]
        return list(settings.used_prize_numbers)

    def available_numbers(self, settings: Settings) -> List[int]:
        used = set(self.used_numbers(settings))
        return [n for n in range(1, settings.total_prizes + 1) if n not in used]

    def _in_range(self, settings: Settings, number: int) -> bool:
        return 1 <= number <= settings.total_prizes

    def _with_history(
        self, settings: Settings, history: List[PrizeHistoryEntry], **update
    ) -> Settings:
        """Copy settings with a new history, keeping the legacy list in sync."""
        update["used_prize_history"] = history
        update["used_prize_numbers"] = sorted(entry.number for entry in history)
        return settings.model_copy(update=update)

    def _history(self, settings: Settings, now: datetime) -> List[PrizeHistoryEntry]:
        """History entries, synthesising them from the legacy list if needed."""
        if settings.used_prize_history or not settings.used_prize_numbers:
            return list(settings.used_prize_history)
        return legacy_history(settings.used_prize_numbers, now)

    def draw(
        self,
        settings: Settings,
        sampler: RandomSampler,
        now: datetime,
        winner_label: Optional[str] = None,
        game_log_id: Optional[str] = None,
    ) -> DrawResult:
        """Draw a free prize number for a win.

        Args:
            settings (Settings): Current settings snapshot
            sampler (RandomSampler): Random source for the pick
            now (datetime): Timestamp for the history entry
            winner_label (Optional[str]): Player name stored with the number
            game_log_id (Optional[str]): Id of the log entry for this win

        Returns:
            DrawResult: new settings and the drawn number, or no number when
            the feature is off or the pool is empty
        """
        if not settings.prize_numbers_enabled:
            return DrawResult(settings=settings, error=PrizeEditError.disabled)
        if settings.remaining_prizes <= 0:
            return DrawResult(settings=settings, error=PrizeEditError.no_prizes)

        available = self.available_numbers(settings)
        if not available:
            logging.warning(
                f"No free prize numbers but {settings.remaining_prizes} prizes remaining; resetting count to 0"
            )
            return DrawResult(
                settings=settings.model_copy(update={"remaining_prizes": 0}),
                error=PrizeEditError.no_prizes,
            )

        number = sampler.choice(available)
        entry = PrizeHistoryEntry(
            number=number,
            timestamp=now,
            player_name=winner_label,
            game_log_id=game_log_id,
        )
        updated = self._with_history(
            settings,
            [entry] + self._history(settings, now),
            remaining_prizes=max(0, settings.remaining_prizes - 1),
        )
        logging.info(f"Drew prize number {number} ({updated.remaining_prizes} remaining)")
        return DrawResult(settings=updated, prize_number=number)

    def simulate_admin_win(
        self, settings: Settings, sampler: RandomSampler, now: datetime
    ) -> DrawResult:
        """Admin-triggered draw, used to test the prize flow from the dashboard."""
        if not settings.prize_numbers_enabled:
            return DrawResult(settings=settings, error=PrizeEditError.disabled)
        if settings.remaining_prizes <= 0 or not self.available_numbers(settings):
            return DrawResult(settings=settings, error=PrizeEditError.no_prizes)
        return self.draw(
            settings,
            sampler,
            now,
            winner_label=ADMIN_SIMULATION_LABEL,
            game_log_id=f"admin-sim-{_millis(now)}",
        )

    def _reject(
        self, settings: Settings, error: PrizeEditError, message: str
    ) -> PrizeEditResult:
        logging.warning(f"Rejected prize number edit: {message}")
        return PrizeEditResult(settings=settings, ok=False, error=error, message=message)

    def add_number(self, settings: Settings, number: int, now: datetime) -> PrizeEditResult:
        """Mark a number as handed out by hand.

        The remaining prize count is left as it is; admins correct it
        separately.
        """
        if not self._in_range(settings, number):
            return self._reject(
                settings,
                PrizeEditError.out_of_range,
                f"Number must be between 1 and {settings.total_prizes}",
            )
        if number in self.used_numbers(settings):
            return self._reject(settings, PrizeEditError.duplicate, f"Number {number} is already used")

        entry = PrizeHistoryEntry(
            number=number,
            timestamp=now,
            player_name=ADMIN_MANUAL_LABEL,
            game_log_id=f"admin-manual-{_millis(now)}",
        )
        updated = self._with_history(settings, [entry] + self._history(settings, now))
        return PrizeEditResult(settings=updated, ok=True)

    def edit_number(
        self, settings: Settings, old: int, new: int, now: datetime
    ) -> PrizeEditResult:
        """Replace a used number with another free one."""
        used = self.used_numbers(settings)
        if old not in used:
            return self._reject(settings, PrizeEditError.not_found, f"Number {old} is not in use")
        if not self._in_range(settings, new):
            return self._reject(
                settings,
                PrizeEditError.out_of_range,
                f"Number must be between 1 and {settings.total_prizes}",
            )
        if new != old and new in used:
            return self._reject(settings, PrizeEditError.duplicate, f"Number {new} is already used")

        history = [
            entry.model_copy(update={"number": new}) if entry.number == old else entry
            for entry in self._history(settings, now)
        ]
        return PrizeEditResult(settings=self._with_history(settings, history), ok=True)

    def remove_entry(
        self,
        settings: Settings,
        number: int,
        now: datetime,
        timestamp: Optional[datetime] = None,
    ) -> PrizeEditResult:
        """Return a used number to the pool and restore one prize."""
        history = self._history(settings, now)
        kept = [
            entry
            for entry in history
            if not (entry.number == number and (timestamp is None or entry.timestamp == timestamp))
        ]
        if len(kept) == len(history):
            return self._reject(settings, PrizeEditError.not_found, f"Number {number} is not in use")

        updated = self._with_history(
            settings,
            kept,
            remaining_prizes=min(settings.total_prizes, settings.remaining_prizes + 1),
        )
        return PrizeEditResult(settings=updated, ok=True)

    def reset_numbers(self, settings: Settings) -> Settings:
        """Clear every used number and refill the pool."""
        return settings.model_copy(
            update={
                "used_prize_numbers": [],
                "used_prize_history": [],
                "remaining_prizes": settings.total_prizes,
            }
        )
