"""
Error types for the tape decoder.

Recoverable conditions (malformed sample records, a bad boot byte) are
raised close to where they happen and handled by the caller one level up.
Fatal conditions propagate out of the decoder with enough context to find
the damaged spot on the tape, together with whatever was decoded before
it (`partial`).
"""

from typing import Optional


class TapeDecodeError(Exception):
    """Base class for all decoding failures."""


class MalformedSampleError(TapeDecodeError):
    """A waveform record could not be parsed into (time, amplitude)."""

    def __init__(self, line: str, reason: str, line_number: Optional[int] = None):
        self.line = line
        self.reason = reason
        self.line_number = line_number
        where = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{where}{reason} ({line.strip()!r})")


class FramingMismatchError(TapeDecodeError):
    """Legacy bit stream framing could not be repaired."""

    def __init__(self, address: int, bit_index: int, pattern: str, expected: str, partial=None):
        self.address = address
        self.bit_index = bit_index
        self.pattern = pattern
        self.expected = expected
        self.partial = partial    # bytes rebuilt before the bad framing
        super().__init__(
            f"error in bitstream at address {address:#06x} (bit {bit_index}): "
            f"framing {pattern!r}, expected {expected!r}, couldn't finish"
        )


class BootSectorMismatchError(TapeDecodeError):
    """First byte of a program did not match the boot sentinel."""

    def __init__(self, address: int, value: int, sentinel: int):
        self.address = address
        self.value = value
        self.sentinel = sentinel
        super().__init__(
            f"bad byte {value:#04x} (octal {value:o}) at {address:#06x}, "
            f"expected sentinel octal {sentinel:o}"
        )


class StreamTruncatedError(TapeDecodeError):
    """Crossing stream ran out in the middle of a byte frame."""

    def __init__(self, address: int, byte_index: int, slot: int, votes, byte_start: float,
                 partial=None):
        self.address = address
        self.byte_index = byte_index
        self.slot = slot
        self.votes = list(votes)
        self.byte_start = byte_start
        self.partial = partial    # image decoded up to the cut
        tally = " ".join(f"{v.high}/{v.low}" for v in self.votes) or "none"
        super().__init__(
            f"stream truncated at address {address:#06x} (byte {byte_index}), "
            f"slot {slot} of 9, frame started at {byte_start:.6f}s, "
            f"votes high/low so far: {tally}"
        )


class StopBitDriftWarning(UserWarning):
    """Stop-bit duration outside tolerance; the byte is still accepted."""

    def __init__(self, address: int, measured_bits: float, expected_bits: float, duration: float):
        self.address = address
        self.measured_bits = measured_bits
        self.expected_bits = expected_bits
        self.duration = duration
        super().__init__(
            f"stop bit duration {duration:.6f}s ({measured_bits:.2f} bits, "
            f"expected {expected_bits:g}) after address {address:#06x}"
        )

    @property
    def error(self) -> float:
        return abs(self.expected_bits - self.measured_bits)
