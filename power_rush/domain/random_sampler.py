"""Injectable random source for the round engine."""
from typing import Optional, Sequence, TypeVar
import numpy as np

T = TypeVar("T")


class RandomSampler:
    """Thin wrapper around a numpy Generator.

    Every random decision the engine makes goes through one instance, so a
    seeded sampler reproduces the same targets and prize draws.
    """

    def __init__(self, seed: Optional[int] = None, generator: Optional[np.random.Generator] = None):
        self.generator = generator if generator is not None else np.random.default_rng(seed)

    def random(self) -> float:
        """Uniform float in [0, 1)."""
        return float(self.generator.random())

    def integer(self, low: int, high: int) -> int:
        """Uniform integer in [low, high] (both inclusive)."""
        return int(self.generator.integers(low, high, endpoint=True))

    def choice(self, items: Sequence[T]) -> T:
        if len(items) == 0:
            raise ValueError("cannot choose from an empty sequence")
        return items[int(self.generator.integers(0, len(items)))]

    def triangular(self, left: float, mode: float, right: float) -> float:
        """Sample a triangular distribution over [left, right] peaking at mode.

        Args:
            left (float): Lower bound
            mode (float): Most likely value, clamped into [left, right]
            right (float): Upper bound

        Returns:
            float: Sampled value
        """
        if right < left:
            raise ValueError("right must be >= left")
        if right == left:
            return float(left)
        mode = min(max(mode, left), right)
        return float(self.generator.triangular(left, mode, right))
