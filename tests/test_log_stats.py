from datetime import datetime, timedelta, timezone
import pytest

from conftest import NOON, make_log
from power_rush.converter import DataConverter
from power_rush.log_stats import LogStats
from power_rush.models.schema_models import GameResult
from power_rush.services.round_outcome import record_loss

WIN = GameResult.win
LOSS = GameResult.loss


@pytest.fixture()
def stats():
    return LogStats()


@pytest.fixture()
def log():
    old = make_log("DEV-C", [LOSS, WIN], start=NOON - timedelta(days=10))
    return make_log("DEV-A", [WIN, LOSS, LOSS]) + make_log("DEV-B", [WIN]) + old


def test_summary_totals(stats, log):
    summary = stats.summary(log, NOON)

    assert summary.total_games == 6
    assert summary.total_wins == 3
    assert summary.total_losses == 3
    assert summary.win_rate == 50
    assert summary.unique_devices == 3
    assert summary.total_players == 3
    assert summary.today_games == 4
    assert summary.today_wins == 2
    assert summary.prize_distribution == [1, 1, 2]


def test_summary_hourly_activity(stats, log):
    summary = stats.summary(log, NOON)

    assert len(summary.hourly_activity) == 24
    by_hour = {h.hour: (h.games, h.wins) for h in summary.hourly_activity}
    # make_log steps back one minute per entry, so 12:00 and 11:59
    assert by_hour[12] == (3, 2)
    assert by_hour[11] == (3, 1)
    assert sum(h.games for h in summary.hourly_activity) == 6


def test_summary_top_devices(stats, log):
    top = stats.summary(log, NOON).top_devices
    assert [(d.device_id, d.plays, d.wins) for d in top] == [
        ("DEV-A", 3, 1),
        ("DEV-C", 2, 1),
        ("DEV-B", 1, 1),
    ]


def test_summary_of_empty_log(stats):
    summary = stats.summary([], NOON)
    assert summary.total_games == 0
    assert summary.win_rate == 0
    assert summary.top_devices == []
    assert all(h.games == 0 for h in summary.hourly_activity)


def test_filter_by_result(stats, log):
    assert len(stats.filter(log, NOON, result="wins")) == 3
    assert all(e.result == LOSS for e in stats.filter(log, NOON, result="losses"))


def test_filter_by_period(stats, log):
    assert len(stats.filter(log, NOON, period="today")) == 4
    assert len(stats.filter(log, NOON, period="week")) == 4
    assert len(stats.filter(log, NOON, period="month")) == 6


def test_filter_by_search_and_device(stats, log):
    assert {e.device_id for e in stats.filter(log, NOON, search="dev-b")} == {"DEV-B"}
    assert len(stats.filter(log, NOON, search="singa-0")) == 3
    assert len(stats.filter(log, NOON, device_id="DEV-A", result="losses")) == 2


@pytest.mark.parametrize("kwargs", [{"result": "draws"}, {"period": "year"}])
def test_filter_rejects_unknown_values(stats, log, kwargs):
    with pytest.raises(ValueError):
        stats.filter(log, NOON, **kwargs)


def test_persisted_and_fresh_entries_filter_together(stats):
    two_days_ago = datetime.now(timezone.utc) - timedelta(days=2)
    payload = {
        "gameLogs": [
            {
                "id": "log-old",
                "playerName": "Elang-3",
                "deviceId": "DEV-A",
                "result": "loss",
                "timestamp": two_days_ago.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "batteryLevel": 40,
                "gameDuration": 25,
            }
        ]
    }
    settings = DataConverter().settings_from_persisted(payload, datetime.now())
    outcome = record_loss(
        settings=settings,
        player_name="Singa-1",
        device_id="DEV-B",
        battery_level=10,
        duration_seconds=25,
        now=datetime.now(),
    )
    logs = outcome.settings.game_logs

    assert all(entry.timestamp.tzinfo is not None for entry in logs)
    assert len(stats.filter(logs, datetime.now(), period="week")) == 2
    assert len(stats.filter(logs, datetime.now(), period="month")) == 2
    assert stats.summary(logs, datetime.now()).total_games == 2
