"""
Decoder configuration.

Defaults match the Digital Group cassette interface: 1105 baud, 2975 Hz
for a 0 bit, 2125 Hz for a 1 bit, two stop bits, programs loaded at 0x0100.
Configurations can be stored as JSON and loaded back with load_config().
"""

import json
import os
from dataclasses import dataclass, field, asdict, fields
from typing import Dict, Tuple, Any


DEFAULT_BAUD_RATE = 1105.0
DEFAULT_HIGH_FREQ = 2975.0   # logical 0 (start bit, space)
DEFAULT_LOW_FREQ = 2125.0    # logical 1 (stop bits, mark)

BASE_ADDRESS = 0x0100
BOOT_SENTINEL = 0o123
STOP_ADDRESS_OFFSETS = (0x20, 0x21)   # low byte, high byte

# Legacy bit path: 3-symbol framing after each byte (stop, stop, next start)
FRAMING_PATTERN = "110"
# Pattern -> symbols to step back after re-inserting the missing bit
FRAMING_CORRECTIONS = {"111": 1, "101": 1, "100": 1}


@dataclass
class DecoderConfig:
    """All tunables of the decoding pipeline."""

    program_mode: bool = False               # no boot check, no stop address
    baud_rate: float = DEFAULT_BAUD_RATE
    tone_frequencies: Tuple[float, float] = (DEFAULT_HIGH_FREQ, DEFAULT_LOW_FREQ)
    stop_bit_tolerance: float = 0.3          # bit periods
    stop_bits_expected: float = 2.0
    run_discard_threshold: float = 100.0     # bit periods
    start_threshold: float = 0.5             # amplitude that starts detection
    base_address: int = BASE_ADDRESS
    boot_sentinel: int = BOOT_SENTINEL
    stop_address_offsets: Tuple[int, int] = STOP_ADDRESS_OFFSETS
    framing_pattern: str = FRAMING_PATTERN
    framing_corrections: Dict[str, int] = field(
        default_factory=lambda: dict(FRAMING_CORRECTIONS))

    @property
    def high_freq(self) -> float:
        return self.tone_frequencies[0]

    @property
    def low_freq(self) -> float:
        return self.tone_frequencies[1]

    @property
    def mid_freq(self) -> float:
        """Tone decision threshold, halfway between the two tones."""
        return (self.high_freq + self.low_freq) / 2

    @property
    def bit_period(self) -> float:
        return 1.0 / self.baud_rate

    @property
    def stop_address_lo(self) -> int:
        return self.base_address + self.stop_address_offsets[0]

    @property
    def stop_address_hi(self) -> int:
        return self.base_address + self.stop_address_offsets[1]

    def validate(self):
        """Raise ValueError if the settings cannot describe a tape."""
        if self.baud_rate <= 0:
            raise ValueError(f"baud_rate must be positive, got {self.baud_rate}")
        if len(self.tone_frequencies) != 2:
            raise ValueError("tone_frequencies must be a (high, low) pair")
        if self.low_freq <= 0 or self.high_freq <= self.low_freq:
            raise ValueError(
                f"tone_frequencies must satisfy high > low > 0, got {self.tone_frequencies}")
        if self.stop_bit_tolerance < 0:
            raise ValueError("stop_bit_tolerance must not be negative")
        if self.run_discard_threshold <= 0:
            raise ValueError("run_discard_threshold must be positive")
        if not 0 <= self.base_address <= 0xFFFF:
            raise ValueError(f"base_address out of range: {self.base_address:#x}")
        if not 0 <= self.boot_sentinel <= 0xFF:
            raise ValueError(f"boot_sentinel must be a byte, got {self.boot_sentinel}")
        if len(self.framing_pattern) != 3 or set(self.framing_pattern) - {"0", "1"}:
            raise ValueError(f"framing_pattern must be 3 binary symbols, got {self.framing_pattern!r}")
        for pattern, rewind in self.framing_corrections.items():
            if len(pattern) != 3 or set(pattern) - {"0", "1"}:
                raise ValueError(f"bad framing correction pattern {pattern!r}")
            if not 0 <= rewind <= 3:
                raise ValueError(f"framing correction rewind out of range for {pattern!r}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['tone_frequencies'] = list(self.tone_frequencies)
        data['stop_address_offsets'] = list(self.stop_address_offsets)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DecoderConfig':
        """Build a config from a dict, e.g. parsed JSON.

        Missing keys keep their defaults; unknown keys raise ValueError so
        typos in a config file do not go unnoticed.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        if 'tone_frequencies' in values:
            values['tone_frequencies'] = tuple(float(f) for f in values['tone_frequencies'])
        if 'stop_address_offsets' in values:
            values['stop_address_offsets'] = tuple(int(o) for o in values['stop_address_offsets'])
        if 'framing_corrections' in values:
            values['framing_corrections'] = {
                str(k): int(v) for k, v in values['framing_corrections'].items()}
        return cls(**values).validate()

    def replace(self, **changes) -> 'DecoderConfig':
        """Return a copy with some settings changed."""
        data = self.to_dict()
        data.update(changes)
        return DecoderConfig.from_dict(data)


def load_config(path: str) -> DecoderConfig:
    """Load a DecoderConfig from a JSON file."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return DecoderConfig.from_dict(data)


def save_config(config: DecoderConfig, path: str):
    """Write a DecoderConfig as JSON."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(config.to_dict(), f, indent=2, sort_keys=True)
