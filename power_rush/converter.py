import logging
from datetime import datetime
from pydantic import ValidationError

from power_rush.domain.difficulty_rules import migrate_legacy_difficulty
from power_rush.domain.prize_rules import legacy_history
from power_rush.models.schema_models import Settings


class DataConverter:
    """This class is used to convert settings between the persisted shape and Settings."""

    def default_settings(self) -> Settings:
        return Settings()

    def migrate_persisted(self, payload: dict, now: datetime) -> dict:
        """Bring an older persisted payload up to the current shape.

        Args:
            payload (dict): Settings as stored by the host (camelCase keys)
            now (datetime): Reference time for synthesised history timestamps

        Returns:
            dict: Migrated copy of the payload; the input is left untouched
        """
        data = dict(payload)

        operating_hours = data.get("operatingHours")
        if isinstance(operating_hours, dict) and isinstance(operating_hours.get("start"), int):
            data["operatingHours"] = {
                "start": f"{operating_hours['start']:02d}:00",
                "end": f"{operating_hours['end']:02d}:00",
            }
            logging.info(f"Migrated operating hours: {data['operatingHours']}")

        difficulty = data.get("difficultyMultiplier")
        if difficulty and difficulty <= 10:
            data["difficultyMultiplier"] = migrate_legacy_difficulty(difficulty)
            logging.info(
                f"Migrated difficulty {difficulty} (1-10 scale) to {data['difficultyMultiplier']:.1f}%"
            )

        used_numbers = data.get("usedPrizeNumbers") or []
        if used_numbers and not data.get("usedPrizeHistory"):
            data["usedPrizeHistory"] = [
                entry.model_dump(mode="json", by_alias=True)
                for entry in legacy_history(used_numbers, now)
            ]
            logging.info(f"Migrated {len(used_numbers)} legacy prize numbers to history")

        return data

    def settings_from_persisted(self, payload: dict, now: datetime) -> Settings:
        """Build Settings from a persisted payload, filling missing keys with defaults."""
        data = self.migrate_persisted(payload, now)
        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            logging.error(f"Error loading settings: {e}")
            raise

    def settings_to_persisted(self, settings: Settings) -> dict:
        return settings.model_dump(mode="json", by_alias=True)
