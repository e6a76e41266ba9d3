from typing import Sequence

from power_rush.domain.random_sampler import RandomSampler
from power_rush.models.dc_models import SettingsEditResult
from power_rush.models.schema_models import Settings


def generate_player_name(unique_names: Sequence[str], sampler: RandomSampler) -> str:
    """Pick a display name such as "Harimau-417" for the next round."""
    if not unique_names:
        return f"Player-{sampler.integer(1, 999):03d}"
    name = sampler.choice(list(unique_names))
    return f"{name[:1].upper()}{name[1:]}-{sampler.integer(1, 999)}"


def add_unique_name(settings: Settings, name: str) -> SettingsEditResult:
    name = name.strip().lower()
    if not name or name in settings.unique_names:
        return SettingsEditResult(settings=settings, ok=False, message="Name is empty or already exists")
    names = settings.unique_names + [name]
    return SettingsEditResult(settings=settings.model_copy(update={"unique_names": names}), ok=True)


def remove_unique_name(settings: Settings, name: str) -> Settings:
    names = [n for n in settings.unique_names if n != name]
    return settings.model_copy(update={"unique_names": names})
