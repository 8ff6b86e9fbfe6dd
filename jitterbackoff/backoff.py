from __future__ import annotations

import logging
import math
import random
import threading
from datetime import timedelta
from fractions import Fraction

from jitterbackoff.config import BackoffConfig, with_options

logger = logging.getLogger(__name__)

# Delays are tracked as whole microseconds, the resolution of timedelta.
_RESOLUTION = timedelta(microseconds=1)
_MIN_MICROSECONDS = timedelta.min // _RESOLUTION
# Floats stop representing every whole microsecond past this magnitude.
_FLOAT_EXACT_LIMIT = 2**53


def _to_microseconds(delay: timedelta) -> int:
    return delay // _RESOLUTION


class Backoff:
    """Exponential backoff delay calculator with optional full jitter.

    Each call to :meth:`next` advances the sequence ``initial``,
    ``initial * factor``, ``initial * factor ** 2``, ... and pins it at
    ``max_delay`` once growth would exceed it. With jitter enabled the
    returned delay is drawn uniformly from ``[0, current]`` instead.

    The first call after construction or :meth:`reset` always yields
    ``initial``, even when ``initial > max_delay``; clamping only applies to
    grown values.

    One instance tracks a single retry sequence and is safe to share between
    threads. It never sleeps; callers decide how to wait.
    """

    def __init__(
        self,
        initial: timedelta | float,
        factor: float,
        max_delay: timedelta | float,
        *,
        jitter: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        config = with_options(
            BackoffConfig(),
            initial_delay=initial,
            factor=factor,
            max_delay=max_delay,
            jitter=jitter,
        )
        self._config = config
        self._initial = _to_microseconds(config.initial_delay)
        self._max = _to_microseconds(config.max_delay)
        self._exact_factor = Fraction(config.factor) if math.isfinite(config.factor) else None
        self._rng = rng if rng is not None else random.Random()
        self._lock = threading.Lock()
        self._current = 0
        self._started = False

    @classmethod
    def from_config(cls, config: BackoffConfig, *, rng: random.Random | None = None) -> Backoff:
        return cls(
            config.initial_delay,
            config.factor,
            config.max_delay,
            jitter=config.jitter,
            rng=rng,
        )

    @property
    def config(self) -> BackoffConfig:
        return self._config

    @property
    def initial(self) -> timedelta:
        return self._config.initial_delay

    @property
    def factor(self) -> float:
        return self._config.factor

    @property
    def max_delay(self) -> timedelta:
        return self._config.max_delay

    @property
    def jitter(self) -> bool:
        return self._config.jitter

    def next(self) -> timedelta:
        """Advance the sequence and return the next delay to wait."""
        with self._lock:
            if not self._started:
                self._current = self._initial
                self._started = True
            else:
                self._current = self._grow(self._current)

            # Degenerate parameters can drive the state negative; delays cannot be.
            upper = max(self._current, 0)
            if self._config.jitter:
                upper = self._rng.randint(0, upper)
            return timedelta(microseconds=upper)

    def _grow(self, current: int) -> int:
        product: Fraction | float
        if not current:
            # Zero stays zero, even for infinite factors.
            product = 0
        elif self._exact_factor is not None and abs(current) > _FLOAT_EXACT_LIMIT:
            product = current * self._exact_factor
        else:
            product = current * self._config.factor
        if (isinstance(product, float) and math.isnan(product)) or product > self._max:
            if current != self._max:
                logger.debug("backoff delay clamped to max_delay=%s", self._config.max_delay)
            return self._max
        return int(max(product, _MIN_MICROSECONDS))

    def reset(self) -> None:
        """Rewind so the next call yields ``initial`` again."""
        with self._lock:
            self._started = False
        logger.debug("backoff sequence reset")

    def __iter__(self) -> Backoff:
        return self

    def __next__(self) -> timedelta:
        return self.next()

    def __repr__(self) -> str:
        return (
            f"Backoff(initial={self.initial!r}, factor={self.factor!r}, "
            f"max_delay={self.max_delay!r}, jitter={self.jitter!r})"
        )
