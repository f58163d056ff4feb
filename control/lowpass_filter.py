"""
First-order low-pass filter.
"""

from typing import Optional


class LowpassFilter1d:
    """
    Single-pole low-pass filter: x = gain * x_prev + (1 - gain) * u.

    The first sample initializes the filter unless an initial value is given.
    """

    def __init__(self, gain: float, initial_value: Optional[float] = None):
        """
        Initialize filter.

        Args:
            gain: Weight of the previous output, in [0, 1). Higher = smoother.
            initial_value: Optional starting value
        """
        self.gain = gain
        self._x = initial_value

    @property
    def value(self) -> Optional[float]:
        return self._x

    def filter(self, u: float) -> float:
        """Filter one sample and return the new output."""
        if self._x is None:
            self._x = float(u)
            return self._x
        self._x = self.gain * self._x + (1.0 - self.gain) * float(u)
        return self._x

    def reset(self, value: Optional[float] = None):
        """Reset filter memory; None re-arms initialization from the next sample."""
        self._x = value
