"""
Synthetic tape encoder.

Generates the FSK waveform a cassette interface would record for a list of
bytes. Used by the self-test and the test suite to produce clean signals
with known content.

Each bit period is filled with a whole number of half cycles of its tone,
so every tone change falls on a zero crossing (the Kansas City standard
does the same with whole cycles). The tone is therefore rounded to the
nearest frequency that fits, e.g. 2975 Hz at 1105 baud becomes five half
cycles per bit (2762.5 Hz), still well clear of the decision threshold.
"""

import wave
from typing import Iterable, List, Optional

import numpy as np

from .config import DecoderConfig
from .waveform import Waveform

SAMPLE_RATE = 44100
LEADER_BITS = 120    # mark tone before the first byte
TRAILER_BITS = 20    # mark tone after the last byte


def frame_bytes(values: Iterable[int], leader_bits: int = LEADER_BITS,
                trailer_bits: int = TRAILER_BITS, stop_bits: int = 2) -> List[int]:
    """Serialize bytes into an asynchronous bit sequence.

    Every byte becomes a 0 start bit, eight data bits LSB first and
    ``stop_bits`` 1 bits, surrounded by a leader and trailer of 1 bits.
    """
    bits = [1] * leader_bits
    for value in values:
        if not 0 <= value <= 0xFF:
            raise ValueError(f"not a byte: {value}")
        bits.append(0)
        bits.extend((value >> i) & 1 for i in range(8))
        bits.extend([1] * stop_bits)
    bits.extend([1] * trailer_bits)
    return bits


def half_cycles_per_bit(frequency: float, baud_rate: float) -> int:
    """Number of whole half cycles of ``frequency`` closest to one bit period."""
    return max(1, int(round(2 * frequency / baud_rate)))


def synthesize_bits(bits: Iterable[int], config: Optional[DecoderConfig] = None,
                    sample_rate: int = SAMPLE_RATE, amplitude: float = 0.8) -> Waveform:
    """Render a bit sequence as a sampled FSK waveform.

    Args:
        bits: 0 (high tone) / 1 (low tone) symbols
        config: Supplies baud rate and tone frequencies
        sample_rate: Output sample rate in Hz
        amplitude: Peak amplitude; must reach the detector start threshold

    Returns:
        Waveform starting at t=0 with phase 0 (rising)
    """
    config = config or DecoderConfig()
    bit_period = config.bit_period
    per_bit = {
        0: half_cycles_per_bit(config.high_freq, config.baud_rate),
        1: half_cycles_per_bit(config.low_freq, config.baud_rate),
    }

    # Boundaries of every half cycle
    edges = [0.0]
    for i, bit in enumerate(bits):
        n = per_bit[1 if bit else 0]
        bit_start = i * bit_period
        edges.extend(bit_start + k * bit_period / n for k in range(1, n + 1))
    edges = np.array(edges, dtype=np.float64)
    if len(edges) < 2:
        return Waveform.from_samples(np.zeros(0), sample_rate)

    n_samples = int(edges[-1] * sample_rate) + 1
    times = np.arange(n_samples, dtype=np.float64) / sample_rate

    idx = np.searchsorted(edges, times, side='right') - 1
    idx = np.clip(idx, 0, len(edges) - 2)
    start = edges[idx]
    width = edges[idx + 1] - start
    polarity = np.where(idx % 2 == 0, 1.0, -1.0)
    samples = amplitude * polarity * np.sin(np.pi * (times - start) / width)

    return Waveform(times=times, amplitudes=samples, sample_rate=float(sample_rate))


def encode_bytes(values: Iterable[int], config: Optional[DecoderConfig] = None,
                 sample_rate: int = SAMPLE_RATE, amplitude: float = 0.8,
                 leader_bits: int = LEADER_BITS, trailer_bits: int = TRAILER_BITS) -> Waveform:
    """Encode bytes straight to a waveform."""
    config = config or DecoderConfig()
    stop_bits = int(round(config.stop_bits_expected))
    bits = frame_bytes(values, leader_bits, trailer_bits, stop_bits)
    return synthesize_bits(bits, config, sample_rate, amplitude)


def save_wav(waveform: Waveform, filename: str):
    """Save a waveform as 16-bit mono WAV."""
    if waveform.sample_rate is None:
        raise ValueError("waveform has no sample rate (loaded from text?)")
    samples = np.clip(waveform.amplitudes, -1.0, 1.0)
    int_samples = (samples * 32767).astype(np.int16)
    with wave.open(filename, 'w') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(int(waveform.sample_rate))
        wf.writeframes(int_samples.tobytes())


def save_dat(waveform: Waveform, filename: str):
    """Save a waveform as SoX-style text."""
    with open(filename, 'w', encoding='utf-8') as f:
        if waveform.sample_rate is not None:
            f.write(f"; Sample Rate {int(waveform.sample_rate)}\n")
        f.write("; Channels 1\n")
        for time, amplitude in waveform:
            f.write(f"{time:.9f} {amplitude:.9f}\n")
