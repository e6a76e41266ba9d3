import asyncio
from datetime import datetime, timedelta, timezone
import pytest

from power_rush.domain.random_sampler import RandomSampler
from power_rush.models.schema_models import GameLogEntry, GameResult, GameRules, Settings

NOON = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic millisecond clock that only moves when told to."""

    def __init__(self, ms: float = 0.0):
        self.ms = ms

    def __call__(self) -> float:
        return self.ms

    def advance(self, ms: float) -> float:
        self.ms += ms
        return self.ms


async def settle() -> None:
    """Let freshly scheduled tasks run up to their next await."""
    for _ in range(5):
        await asyncio.sleep(0)


class ManualSleeper:
    """Stand-in for asyncio.sleep; every pending sleep finishes on tick()."""

    def __init__(self):
        self.waiters = []

    async def __call__(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.waiters.append(future)
        await future

    async def tick(self, times: int = 1) -> None:
        for _ in range(times):
            await settle()
            waiters, self.waiters = self.waiters, []
            for future in waiters:
                if not future.done():
                    future.set_result(None)
            await settle()

    @property
    def pending(self) -> int:
        return sum(1 for future in self.waiters if not future.done())


def make_log(device_id: str, results, start: datetime = NOON):
    return [
        GameLogEntry(
            id=f"log-{device_id}-{i}",
            player_name=f"Singa-{i}",
            device_id=device_id,
            result=result,
            prize_number=(i + 1) if result == GameResult.win else None,
            timestamp=start - timedelta(minutes=i),
            battery_level=100 if result == GameResult.win else 40,
            duration_seconds=20,
        )
        for i, result in enumerate(results)
    ]


@pytest.fixture()
def settings():
    return Settings(
        duration=25,
        operating_hours_enabled=False,
        total_prizes=10,
        remaining_prizes=10,
        difficulty_multiplier=50,
        auto_difficulty_enabled=False,
        game_rules=GameRules(max_plays_per_device=10, max_wins_per_device=3),
    )


@pytest.fixture()
def sampler():
    return RandomSampler(seed=1234)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def sleeper():
    return ManualSleeper()
