"""Per-device play and win quotas.

Quotas are checked against the client-visible log only; they assume one
honest client per device id.
"""
from typing import List, Sequence

from power_rush.models.dc_models import DeviceState, Eligibility, QuotaReason, RulesEditResult
from power_rush.models.schema_models import GameLogEntry, GameResult, GameRules

RECENT_GAMES_LIMIT = 5


class DeviceQuotaGovernor:
    @staticmethod
    def _device_logs(device_id: str, log: Sequence[GameLogEntry]) -> List[GameLogEntry]:
        return [entry for entry in log if entry.device_id == device_id]

    def can_play(
        self, device_id: str, rules: GameRules, log: Sequence[GameLogEntry]
    ) -> Eligibility:
        """Check whether a device may start another round.

        Args:
            device_id (str): Device fingerprint
            rules (GameRules): Configured limits and whitelist
            log (Sequence[GameLogEntry]): Full game log

        Returns:
            Eligibility: can_play flag, and a reason when it is refused
        """
        if device_id in rules.whitelisted_devices:
            return Eligibility(can_play=True)

        device_logs = self._device_logs(device_id, log)
        total_plays = len(device_logs)
        total_wins = sum(1 for entry in device_logs if entry.result == GameResult.win)

        if total_plays >= rules.max_plays_per_device:
            return Eligibility(
                can_play=False,
                reason=f"Device has reached the play limit of {rules.max_plays_per_device} plays",
                code=QuotaReason.max_plays,
            )
        if total_wins >= rules.max_wins_per_device:
            return Eligibility(
                can_play=False,
                reason=f"Device has reached the win limit of {rules.max_wins_per_device} wins",
                code=QuotaReason.max_wins,
            )
        return Eligibility(can_play=True)

    def device_state(
        self, device_id: str, log: Sequence[GameLogEntry], whitelist: Sequence[str]
    ) -> DeviceState:
        device_logs = self._device_logs(device_id, log)
        wins = sum(1 for entry in device_logs if entry.result == GameResult.win)
        return DeviceState(
            total_plays=len(device_logs),
            total_wins=wins,
            total_losses=len(device_logs) - wins,
            is_whitelisted=device_id in whitelist,
            recent_games=device_logs[:RECENT_GAMES_LIMIT],
        )

    def add_whitelisted_device(self, rules: GameRules, device_id: str) -> RulesEditResult:
        device_id = device_id.strip().upper()
        if not device_id or device_id in rules.whitelisted_devices:
            return RulesEditResult(
                rules=rules, ok=False, message="Device ID is empty or already whitelisted"
            )
        whitelist = rules.whitelisted_devices + [device_id]
        return RulesEditResult(
            rules=rules.model_copy(update={"whitelisted_devices": whitelist}), ok=True
        )

    def remove_whitelisted_device(self, rules: GameRules, device_id: str) -> GameRules:
        whitelist = [d for d in rules.whitelisted_devices if d != device_id]
        return rules.model_copy(update={"whitelisted_devices": whitelist})
