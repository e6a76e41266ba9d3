import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set, Union

from power_rush.domain.click_rules import ClickAuthenticator
from power_rush.domain.device_rules import DeviceQuotaGovernor
from power_rush.domain.difficulty_rules import (
    compute_required_clicks,
    effective_difficulty,
    is_within_operating_hours,
    progress_level,
    round_half_up,
)
from power_rush.domain.player_names import generate_player_name
from power_rush.domain.random_sampler import RandomSampler
from power_rush.load_config import random_seed
from power_rush.models.dc_models import (
    ClickRejection,
    ClickResult,
    DeviceState,
    Eligibility,
    RoundOutcome,
    RoundState,
    StartRefusal,
    StartResult,
)
from power_rush.models.schema_models import Settings
from power_rush.services.round_outcome import record_loss, record_win

COUNTDOWN_SECONDS = 3
CONTINUE_COUNTDOWN_SECONDS = 7
MAX_PROGRESS_BEFORE_WIN = 99
TIMED_STATES = (RoundState.countdown, RoundState.playing, RoundState.result)


def _local_now() -> datetime:
    # aware, in the host's local zone
    return datetime.now().astimezone()


class RoundManager:
    """Runs one device's rounds: instructions -> countdown -> playing -> result.

    Timers are asyncio tasks owned by the state that started them. Every
    transition cancels them and bumps a state token, and each timer checks
    the token after waking up, so a late tick never acts on a newer state.
    """

    def __init__(
        self,
        settings: Settings,
        device_id: str,
        *,
        sampler: Optional[RandomSampler] = None,
        on_outcome: Optional[Callable[[RoundOutcome], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock_ms: Optional[Callable[[], float]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.device_id = device_id
        self.sampler = sampler or RandomSampler(random_seed)
        self.on_outcome = on_outcome
        self._sleep = sleep
        self._clock_ms = clock_ms or (lambda: time.monotonic() * 1000)
        self._now = now or _local_now
        self.governor = DeviceQuotaGovernor()

        self.state = RoundState.instructions
        self._token = 0
        self._tasks: Set[asyncio.Task] = set()
        self.blocked_reason: Optional[str] = None
        self.last_win_at: Optional[datetime] = None
        self.last_outcome: Optional[RoundOutcome] = None
        self.player_name = generate_player_name(settings.unique_names, self.sampler)
        self._reset_round()

        eligibility = self.check_eligibility()
        if not eligibility.can_play:
            self._block(eligibility.reason)

    @property
    def token(self) -> int:
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    def _reset_round(self):
        self.authenticator = ClickAuthenticator()
        self.taps = 0
        self.required_clicks = 0
        self.difficulty = self.settings.difficulty_multiplier
        self.battery_level = 0.0
        self.time_left = self.settings.duration
        self.countdown = COUNTDOWN_SECONDS
        self.continue_countdown = CONTINUE_COUNTDOWN_SECONDS
        self.can_continue = False
        self.is_winner = False
        self.prize_number: Optional[int] = None
        self.key_spamming = False
        self.start_ms = 0.0
        self.start_time: Optional[datetime] = None

    # ==== timers ==============================================================

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timers(self):
        current = asyncio.current_task() if self._has_running_loop() else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()

    @staticmethod
    def _has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def _transition(self, new_state: RoundState):
        if new_state in TIMED_STATES:
            # raises RuntimeError before any state changes
            asyncio.get_running_loop()
        self._cancel_timers()
        self._token += 1
        old_state = self.state
        self.state = new_state
        logging.info(f"Round state: {old_state.value} -> {new_state.value} (device={self.device_id})")

        if new_state == RoundState.countdown:
            self._spawn(self._run_countdown(self._token))
        elif new_state == RoundState.playing:
            self._spawn(self._run_round_timer(self._token))
        elif new_state == RoundState.result:
            self._spawn(self._run_continue_cooldown(self._token))

    async def _run_countdown(self, token: int):
        while self.countdown > 0:
            await self._sleep(1)
            if not self.is_current(token):
                return
            self.countdown -= 1
        self._transition(RoundState.playing)

    async def _run_round_timer(self, token: int):
        while self.time_left > 0:
            await self._sleep(1)
            if not self.is_current(token):
                return
            self.time_left -= 1
        self._finish_loss()

    async def _run_continue_cooldown(self, token: int):
        while self.continue_countdown > 0:
            await self._sleep(1)
            if not self.is_current(token):
                return
            self.continue_countdown -= 1
        self.can_continue = True

    # ==== eligibility =========================================================

    def check_eligibility(self) -> Eligibility:
        return self.governor.can_play(
            self.device_id, self.settings.game_rules, self.settings.game_logs
        )

    def device_state(self) -> DeviceState:
        return self.governor.device_state(
            self.device_id,
            self.settings.game_logs,
            self.settings.game_rules.whitelisted_devices,
        )

    def _block(self, reason: Optional[str]):
        self.blocked_reason = reason or "Device cannot play"
        logging.info(f"Device {self.device_id} blocked: {self.blocked_reason}")
        self._transition(RoundState.blocked)

    def refresh_eligibility(self) -> Eligibility:
        """Re-evaluate the quota for the idle states after settings changed."""
        eligibility = self.check_eligibility()
        if self.state == RoundState.blocked and eligibility.can_play:
            self.blocked_reason = None
            self._transition(RoundState.instructions)
        elif self.state == RoundState.instructions and not eligibility.can_play:
            self._block(eligibility.reason)
        return eligibility

    def apply_settings(self, settings: Settings) -> None:
        """Adopt a settings snapshot saved by the host."""
        self.settings = settings
        if self.state == RoundState.instructions:
            self.time_left = settings.duration
        if self.state in (RoundState.instructions, RoundState.blocked):
            self.refresh_eligibility()

    # ==== actions =============================================================

    def start(self) -> StartResult:
        """Leave the instructions screen and begin the countdown.

        Starting a round needs a running event loop; refusals do not.

        Returns:
            StartResult: started flag, or the reason the round was refused
        """
        if self.state != RoundState.instructions:
            return StartResult(started=False, reason=StartRefusal.wrong_state)

        eligibility = self.check_eligibility()
        if not eligibility.can_play:
            self._block(eligibility.reason)
            return StartResult(started=False, reason=StartRefusal.blocked, message=self.blocked_reason)

        if self.settings.remaining_prizes <= 0:
            return StartResult(
                started=False,
                reason=StartRefusal.no_prizes,
                message="Sorry, all prizes are gone. Please try again later.",
            )

        now = self._now()
        if not is_within_operating_hours(self.settings, now):
            hours = self.settings.operating_hours
            return StartResult(
                started=False,
                reason=StartRefusal.outside_hours,
                message=f"The game is only available between {hours.start} and {hours.end}.",
            )

        asyncio.get_running_loop()
        self._reset_round()
        self.start_ms = self._clock_ms()
        self.start_time = now
        self.difficulty = effective_difficulty(self.settings, now).difficulty
        self.required_clicks = compute_required_clicks(
            self.settings, self.last_win_at, now, self.sampler
        )
        logging.info(
            f"Round started: player={self.player_name} difficulty={self.difficulty:.0f} "
            f"required_clicks={self.required_clicks}"
        )
        self._transition(RoundState.countdown)
        return StartResult(started=True)

    def tap(self) -> ClickResult:
        """Register one tap while playing."""
        if self.state != RoundState.playing:
            return ClickResult(accepted=False, reason=ClickRejection.not_playing)
        if self.key_spamming:
            return ClickResult(accepted=False, reason=ClickRejection.key_held)

        now_ms = self._clock_ms()
        result = self.authenticator.register_click(now_ms)
        if result.penalized_until is not None:
            logging.warning(
                f"Click penalty for device {self.device_id} until {result.penalized_until:.0f}ms"
            )
        if not result.accepted:
            return result

        self.taps += 1
        if self.taps >= self.required_clicks and self.time_left > 0:
            self._finish_win(now_ms)
        else:
            self.battery_level = min(
                MAX_PROGRESS_BEFORE_WIN,
                progress_level(self.taps, self.required_clicks, self.difficulty),
            )
        return result

    def key_down(self, repeat: bool = False) -> Union[StartResult, ClickResult, bool, None]:
        """Keyboard press (space/enter), routed by the current state.

        Auto-repeat from a held key marks the input as spamming until key_up.
        """
        if repeat:
            self.key_spamming = True
            return ClickResult(accepted=False, reason=ClickRejection.key_held)
        if self.state == RoundState.instructions:
            return self.start()
        if self.state == RoundState.blocked:
            return self.refresh_eligibility().can_play
        if self.state == RoundState.playing:
            return self.tap()
        if self.state == RoundState.result and self.can_continue:
            return self.continue_round()
        return None

    def key_up(self) -> None:
        self.key_spamming = False

    def continue_round(self) -> bool:
        """Leave the result screen once the continue cooldown has passed."""
        if self.state != RoundState.result or not self.can_continue:
            return False

        self._reset_round()
        eligibility = self.check_eligibility()
        if eligibility.can_play:
            self.player_name = generate_player_name(self.settings.unique_names, self.sampler)
            self._transition(RoundState.instructions)
        else:
            self._block(eligibility.reason)
        return True

    def close(self) -> None:
        """Cancel every pending timer; the manager is unusable afterwards."""
        self._cancel_timers()
        self._token += 1

    # ==== outcomes ============================================================

    def _elapsed_seconds(self, now_ms: float) -> int:
        return round_half_up((now_ms - self.start_ms) / 1000)

    def _publish(self, outcome: RoundOutcome):
        self.settings = outcome.settings
        self.last_outcome = outcome
        self._transition(RoundState.result)
        if self.on_outcome is not None:
            self.on_outcome(outcome)

    def _finish_win(self, now_ms: float):
        now = self._now()
        self.battery_level = 100.0
        self.is_winner = True
        self.last_win_at = now
        outcome = record_win(
            settings=self.settings,
            player_name=self.player_name,
            device_id=self.device_id,
            battery_level=self.battery_level,
            duration_seconds=self._elapsed_seconds(now_ms),
            now=now,
            sampler=self.sampler,
        )
        self.prize_number = outcome.prize_number
        self._publish(outcome)

    def _finish_loss(self):
        self.is_winner = False
        outcome = record_loss(
            settings=self.settings,
            player_name=self.player_name,
            device_id=self.device_id,
            battery_level=self.battery_level,
            duration_seconds=self._elapsed_seconds(self._clock_ms()),
            now=self._now(),
        )
        self._publish(outcome)
