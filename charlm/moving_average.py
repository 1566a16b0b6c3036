from __future__ import annotations

import math
from collections import deque

from .errors import ConfigurationError


class MovingAverage:
    """Mean, variance and std dev of the last ``capacity`` values added."""

    def __init__(self, capacity: int = 200):
        if capacity < 1:
            raise ConfigurationError("The moving average capacity must be >= 1")
        self.capacity = capacity
        self.values: deque[float] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self.values)

    def add(self, value: float) -> None:
        self.values.append(float(value))

    def mean(self) -> float:
        if not self.values:
            return 0.0
        return sum(self.values) / len(self.values)

    def variance(self) -> float:
        if not self.values:
            return 0.0
        m = self.mean()
        return sum((v - m) ** 2 for v in self.values) / len(self.values)

    def std_dev(self) -> float:
        return math.sqrt(self.variance())
