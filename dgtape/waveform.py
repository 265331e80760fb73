"""
Waveform loading.

Two input formats are understood:

- SoX ``.dat`` text: one sample per line, ``time amplitude [amplitude...]``.
  Lines containing ``;`` are comments (SoX writes the sample rate and channel
  count that way). The first field is the time, the last field the amplitude.
- ``.wav``: the first channel is used, scaled to floats in [-1, 1].

Malformed text lines are skipped and counted instead of aborting the load;
a noisy transcription with a few broken lines still decodes.
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np
from scipy.io import wavfile

from .errors import MalformedSampleError

logger = logging.getLogger(__name__)

COMMENT_MARKER = ';'


@dataclass(frozen=True, eq=False)
class Waveform:
    """Sampled signal as parallel time / amplitude arrays."""
    times: np.ndarray                     # seconds, strictly increasing
    amplitudes: np.ndarray                # float64
    skipped_lines: int = 0                # malformed records dropped by the loader
    sample_rate: Optional[float] = None   # None when times come from a text file

    def __post_init__(self):
        if len(self.times) != len(self.amplitudes):
            raise ValueError(
                f"times and amplitudes differ in length ({len(self.times)} != {len(self.amplitudes)})")

    def __len__(self) -> int:
        return len(self.times)

    def __iter__(self) -> Iterator[Tuple[float, float]]:
        return zip(self.times.tolist(), self.amplitudes.tolist())

    @property
    def duration(self) -> float:
        if len(self.times) == 0:
            return 0.0
        return float(self.times[-1] - self.times[0])

    @classmethod
    def from_samples(cls, samples: np.ndarray, sample_rate: float,
                     start_time: float = 0.0) -> 'Waveform':
        """Wrap evenly spaced samples, generating the time axis."""
        samples = np.asarray(samples, dtype=np.float64)
        times = start_time + np.arange(len(samples), dtype=np.float64) / sample_rate
        return cls(times=times, amplitudes=samples, sample_rate=float(sample_rate))


def parse_sample_line(line: str, line_number: Optional[int] = None) -> Tuple[float, float]:
    """Parse one ``time amplitude`` record.

    Raises:
        MalformedSampleError: wrong field count, non-numeric or non-finite values
    """
    parts = line.split()
    if len(parts) < 2:
        raise MalformedSampleError(line, f"expected time and amplitude, got {len(parts)} field(s)",
                                   line_number)
    try:
        time = float(parts[0])
        amplitude = float(parts[-1])
    except ValueError:
        raise MalformedSampleError(line, "non-numeric field", line_number)
    if not (math.isfinite(time) and math.isfinite(amplitude)):
        raise MalformedSampleError(line, "non-finite value", line_number)
    return time, amplitude


def load_dat(filename: str) -> Waveform:
    """Load a SoX-style text waveform."""
    times: List[float] = []
    amplitudes: List[float] = []
    skipped = 0
    last_time = -math.inf

    with open(filename, 'r', encoding='utf-8', errors='replace') as f:
        for line_number, line in enumerate(f, start=1):
            if COMMENT_MARKER in line or not line.strip():
                continue
            try:
                time, amplitude = parse_sample_line(line, line_number)
                if time <= last_time:
                    raise MalformedSampleError(line, "time does not increase", line_number)
            except MalformedSampleError as e:
                skipped += 1
                logger.warning("Skipping sample record: %s", e)
                continue
            times.append(time)
            amplitudes.append(amplitude)
            last_time = time

    if skipped:
        logger.warning("%s: skipped %d malformed sample line(s)", filename, skipped)
    logger.info("Loaded %d samples from %s", len(times), filename)

    return Waveform(times=np.array(times, dtype=np.float64),
                    amplitudes=np.array(amplitudes, dtype=np.float64),
                    skipped_lines=skipped)


def load_wav(filename: str) -> Waveform:
    """Load a WAV file as float64 mono samples (first channel)."""
    rate, data = wavfile.read(filename)

    if data.ndim > 1:
        data = data[:, 0]

    if data.dtype == np.int16:
        samples = data.astype(np.float64) / 32768.0
    elif data.dtype == np.int32:
        samples = data.astype(np.float64) / 2147483648.0
    elif data.dtype == np.uint8:
        samples = data.astype(np.float64) / 128.0 - 1.0
    else:
        samples = data.astype(np.float64)

    logger.info("Loaded %d samples at %d Hz from %s", len(samples), rate, filename)
    return Waveform.from_samples(samples, rate)


def load_waveform(filename: str) -> Waveform:
    """Load a waveform, picking the reader from the file extension."""
    ext = os.path.splitext(filename)[1].lower()
    if ext == '.wav':
        return load_wav(filename)
    return load_dat(filename)
