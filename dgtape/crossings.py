"""
Zero-crossing detection and tone classification.

Stage one of the decoder: the waveform is reduced to the instants where it
changes sign, and each crossing is labeled with the tone of the half period
that ends there.

    samples -> ZeroCrossing(time) -> ClassifiedCrossing(time, duration, freq, tone)

A half period of duration d has frequency 1 / (2 d). Anything above the
midpoint between the two nominal tones is the high tone (a 0 bit), anything
at or below it the low tone (a 1 bit).
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

START_THRESHOLD = 0.5


class Tone(Enum):
    HIGH = 0   # space, logical 0
    LOW = 1    # mark, logical 1

    @property
    def bit(self) -> int:
        return self.value

    @property
    def symbol(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class ZeroCrossing:
    time: float
    left_time: float    # sample before the crossing
    right_time: float   # sample at or after the crossing


@dataclass(frozen=True)
class ClassifiedCrossing:
    time: float
    duration: float     # since the previous crossing
    frequency: float
    tone: Tone

    @property
    def start_time(self) -> float:
        """Start of the half period that ends at this crossing."""
        return self.time - self.duration


# ==============================================================================
# Zero-Crossing Detector
# ==============================================================================

class ZeroCrossingDetector:
    """
    Finds sign changes in a sampled waveform.

    Nothing is reported until the first sample whose amplitude reaches
    ``start_threshold``; leading silence and hum before the tape starts are
    dropped. After that, a pair of samples with strictly opposite signs gives
    a crossing by linear interpolation, and a sample of exactly zero is a
    crossing at its own time.
    """

    def __init__(self, start_threshold: float = START_THRESHOLD):
        self.start_threshold = start_threshold
        self.reset()

    def reset(self):
        self.started = False
        self.start_time: Optional[float] = None
        self._last_time = 0.0
        self._last_amplitude = 0.0

    def feed(self, time: float, amplitude: float) -> Optional[ZeroCrossing]:
        """Process one sample, returning the crossing it completes, if any."""
        if not self.started:
            if amplitude >= self.start_threshold:
                self.started = True
                self.start_time = time
                self._last_time = time
                self._last_amplitude = amplitude
                logger.debug("Signal starts at %.6fs (amplitude %.3f)", time, amplitude)
            return None

        last_time = self._last_time
        last_amplitude = self._last_amplitude
        self._last_time = time
        self._last_amplitude = amplitude

        if (last_amplitude < 0 < amplitude) or (last_amplitude > 0 > amplitude):
            dt = (amplitude * (time - last_time)) / (amplitude - last_amplitude)
            # Clamp rounding so the crossing never leaves its sample pair
            crossing = min(max(time - dt, last_time), time)
            return ZeroCrossing(crossing, last_time, time)
        if amplitude == 0:
            return ZeroCrossing(time, last_time, time)
        return None

    def detect(self, samples: Iterable[Tuple[float, float]]) -> Iterator[ZeroCrossing]:
        """Lazily yield the crossings of a sample sequence."""
        for time, amplitude in samples:
            crossing = self.feed(time, amplitude)
            if crossing is not None:
                yield crossing


# ==============================================================================
# Frequency Classifier
# ==============================================================================

def half_period_frequency(duration: float) -> float:
    """Frequency of a half cycle; a non-positive duration counts as infinite."""
    if duration <= 0:
        return math.inf
    return 1.0 / (2 * duration)


class FrequencyClassifier:
    """Labels each crossing HIGH or LOW against the midpoint frequency."""

    def __init__(self, high_freq: float, low_freq: float):
        self.high_freq = high_freq
        self.low_freq = low_freq
        self.mid_freq = (high_freq + low_freq) / 2
        self.degenerate_count = 0

    def tone_for(self, frequency: float) -> Tone:
        return Tone.HIGH if frequency > self.mid_freq else Tone.LOW

    def classify(self, crossings: Iterable[ZeroCrossing],
                 origin: float = 0.0) -> Iterator[ClassifiedCrossing]:
        """Yield one ClassifiedCrossing per crossing.

        Args:
            crossings: Zero crossings in time order
            origin: Reference time for the first crossing's duration

        Coincident crossings (zero duration) are classified as an infinitely
        high frequency rather than raising.
        """
        previous = origin
        for crossing in crossings:
            duration = crossing.time - previous
            if duration <= 0:
                self.degenerate_count += 1
                logger.debug("Degenerate crossing at %.6fs (duration %g)", crossing.time, duration)
            frequency = half_period_frequency(duration)
            yield ClassifiedCrossing(crossing.time, duration, frequency, self.tone_for(frequency))
            previous = crossing.time
