"""
Exception types raised by the contagion engine.
"""

from typing import Iterable, List


class ContagionError(Exception):
    """Base class for all engine errors."""


class InvalidParameter(ContagionError, ValueError):
    """Malformed generation, shock or sweep configuration."""


class ShockExceedsAssets(ContagionError, ValueError):
    """
    A shock vector would drive at least one outside asset negative.

    Attributes:
        indices (List[int]): Banks whose shock exceeds their outside assets
    """

    def __init__(self, indices: Iterable[int]):
        self.indices: List[int] = [int(i) for i in indices]
        super().__init__(
            f"Shock exceeds available outside assets for bank(s) {self.indices}"
        )
