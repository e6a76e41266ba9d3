import asyncio
import pytest

from conftest import NOON, make_log, settle
from power_rush.models.dc_models import ClickRejection, RoundState, StartRefusal
from power_rush.models.schema_models import GameResult, GameRules
from power_rush.round_manager import RoundManager


@pytest.fixture()
def quick(settings):
    # duration 5s at difficulty 0: 10 to 15 taps
    return settings.model_copy(update={"duration": 5, "difficulty_multiplier": 0})


def build(settings, sampler, sleeper, clock, outcomes=None, now=NOON):
    return RoundManager(
        settings,
        "DEV-A",
        sampler=sampler,
        on_outcome=outcomes.append if outcomes is not None else None,
        sleep=sleeper,
        clock_ms=clock,
        now=lambda: now,
    )


async def start_playing(manager, sleeper):
    assert manager.start().started
    await sleeper.tick(3)
    assert manager.state == RoundState.playing


def tap_until_done(manager, clock, limit=500):
    for _ in range(limit):
        if manager.state != RoundState.playing:
            return
        clock.advance(100)
        manager.tap()
    raise AssertionError("round never finished")


def test_countdown_leads_to_playing(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        assert manager.state == RoundState.instructions

        result = manager.start()
        assert result.started
        assert manager.state == RoundState.countdown
        assert 10 <= manager.required_clicks <= 15

        await sleeper.tick(2)
        assert manager.state == RoundState.countdown
        assert manager.countdown == 1

        await sleeper.tick()
        assert manager.state == RoundState.playing
        assert manager.time_left == 5
        manager.close()

    asyncio.run(scenario())


def test_win_by_tapping(quick, sampler, sleeper, clock):
    async def scenario():
        outcomes = []
        manager = build(quick, sampler, sleeper, clock, outcomes)
        await start_playing(manager, sleeper)

        tap_until_done(manager, clock)

        assert manager.state == RoundState.result
        assert manager.is_winner
        assert manager.taps == manager.required_clicks
        assert manager.battery_level == 100
        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert outcome.log_entry.result == GameResult.win
        assert outcome.prize_number == manager.prize_number
        assert 1 <= manager.prize_number <= 10
        assert manager.settings.remaining_prizes == 9
        assert manager.last_win_at == NOON

        await settle()
        # only the continue cooldown is still waiting
        assert sleeper.pending == 1
        manager.close()

    asyncio.run(scenario())


def test_no_loss_is_recorded_after_a_win(quick, sampler, sleeper, clock):
    async def scenario():
        outcomes = []
        manager = build(quick, sampler, sleeper, clock, outcomes)
        await start_playing(manager, sleeper)
        tap_until_done(manager, clock)

        await sleeper.tick(20)

        assert len(outcomes) == 1
        assert len(manager.settings.game_logs) == 1
        assert manager.state == RoundState.result
        manager.close()

    asyncio.run(scenario())


def test_loss_when_time_runs_out(quick, sampler, sleeper, clock):
    async def scenario():
        outcomes = []
        manager = build(quick, sampler, sleeper, clock, outcomes)
        await start_playing(manager, sleeper)
        clock.advance(100)
        manager.tap()
        clock.advance(100)
        manager.tap()

        await sleeper.tick(4)
        assert manager.state == RoundState.playing
        assert manager.time_left == 1

        await sleeper.tick()
        assert manager.state == RoundState.result
        assert not manager.is_winner
        assert len(outcomes) == 1
        entry = outcomes[0].log_entry
        assert entry.result == GameResult.loss
        assert 0 < entry.battery_level < 100
        assert manager.settings.remaining_prizes == 10

        result = manager.tap()
        assert not result.accepted
        assert result.reason == ClickRejection.not_playing
        manager.close()

    asyncio.run(scenario())


def test_battery_never_shows_full_before_a_win(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        await start_playing(manager, sleeper)
        for _ in range(manager.required_clicks - 1):
            clock.advance(100)
            manager.tap()
        assert manager.state == RoundState.playing
        assert manager.battery_level <= 99
        manager.close()

    asyncio.run(scenario())


def test_continue_after_cooldown(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        await start_playing(manager, sleeper)
        await sleeper.tick(5)
        assert manager.state == RoundState.result

        assert not manager.continue_round()
        await sleeper.tick(6)
        assert not manager.can_continue
        await sleeper.tick()
        assert manager.can_continue

        assert manager.continue_round()
        assert manager.state == RoundState.instructions
        assert manager.taps == 0
        assert manager.player_name
        manager.close()

    asyncio.run(scenario())


def test_next_round_after_a_win_is_harder(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        await start_playing(manager, sleeper)
        tap_until_done(manager, clock)
        await sleeper.tick(7)
        assert manager.continue_round()

        assert manager.start().started
        # difficulty 0 raised to 30 for a round started right after a win
        assert manager.required_clicks > 15
        manager.close()

    asyncio.run(scenario())


def test_quota_blocks_the_next_round(quick, sampler, sleeper, clock):
    async def scenario():
        one_play = quick.model_copy(update={"game_rules": GameRules(max_plays_per_device=1)})
        manager = build(one_play, sampler, sleeper, clock)
        await start_playing(manager, sleeper)
        await sleeper.tick(5)
        await sleeper.tick(7)

        assert manager.continue_round()
        assert manager.state == RoundState.blocked
        assert "play limit" in manager.blocked_reason
        assert manager.device_state().total_plays == 1

        raised = manager.settings.model_copy(
            update={"game_rules": GameRules(max_plays_per_device=5)}
        )
        manager.apply_settings(raised)
        assert manager.state == RoundState.instructions
        assert manager.blocked_reason is None
        manager.close()

    asyncio.run(scenario())


def test_device_over_quota_starts_blocked(settings, sampler, sleeper, clock):
    over = settings.model_copy(update={"game_logs": make_log("DEV-A", [GameResult.loss] * 10)})
    manager = build(over, sampler, sleeper, clock)

    assert manager.state == RoundState.blocked
    result = manager.start()
    assert not result.started
    assert result.reason == StartRefusal.wrong_state
    assert manager.key_down() is False


def test_apply_settings_blocks_idle_device(settings, sampler, sleeper, clock):
    manager = build(settings, sampler, sleeper, clock)
    over = settings.model_copy(update={"game_logs": make_log("DEV-A", [GameResult.win] * 3)})

    manager.apply_settings(over)
    assert manager.state == RoundState.blocked
    assert "win limit" in manager.blocked_reason


def test_start_refused_without_prizes(settings, sampler, sleeper, clock):
    empty = settings.model_copy(update={"remaining_prizes": 0})
    manager = build(empty, sampler, sleeper, clock)

    result = manager.start()
    assert not result.started
    assert result.reason == StartRefusal.no_prizes
    assert manager.state == RoundState.instructions


def test_start_refused_outside_operating_hours(settings, sampler, sleeper, clock):
    opened = settings.model_copy(update={"operating_hours_enabled": True})
    manager = build(opened, sampler, sleeper, clock, now=NOON.replace(hour=22, minute=30))

    result = manager.start()
    assert not result.started
    assert result.reason == StartRefusal.outside_hours
    assert "09:00" in result.message


def test_start_without_event_loop_leaves_state_alone(quick, sampler, sleeper, clock):
    manager = build(quick, sampler, sleeper, clock)
    token = manager.token

    with pytest.raises(RuntimeError):
        manager.start()

    assert manager.state == RoundState.instructions
    assert manager.token == token
    assert manager.required_clicks == 0
    assert manager.start_time is None


def test_default_clock_is_timezone_aware(settings):
    manager = RoundManager(settings, "DEV-A")
    assert manager._now().tzinfo is not None


def test_start_twice_is_refused(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        assert manager.start().started
        assert manager.start().reason == StartRefusal.wrong_state
        manager.close()

    asyncio.run(scenario())


def test_held_key_is_ignored_until_released(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        await start_playing(manager, sleeper)

        assert manager.key_down(repeat=True).reason == ClickRejection.key_held
        clock.advance(100)
        assert manager.tap().reason == ClickRejection.key_held
        assert manager.taps == 0

        manager.key_up()
        clock.advance(100)
        assert manager.key_down().accepted
        assert manager.taps == 1
        manager.close()

    asyncio.run(scenario())


def test_key_down_starts_a_round(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        assert manager.key_down().started
        assert manager.state == RoundState.countdown
        manager.close()

    asyncio.run(scenario())


def test_close_cancels_timers(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        manager.start()
        await settle()
        manager.close()

        await sleeper.tick(5)
        assert manager.state == RoundState.countdown
        assert manager.countdown == 3
        assert sleeper.pending == 0

    asyncio.run(scenario())


def test_transitions_invalidate_old_tokens(quick, sampler, sleeper, clock):
    async def scenario():
        manager = build(quick, sampler, sleeper, clock)
        token = manager.token
        assert manager.is_current(token)

        manager.start()
        assert not manager.is_current(token)
        manager.close()

    asyncio.run(scenario())
