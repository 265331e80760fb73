"""
Tone-run bit expansion (legacy decoding path).

Instead of sampling bit slots, this path measures how long each tone lasts
and converts the duration into a number of identical bits. The resulting
raw bit stream is then cut into fixed 11-bit frames:

    [8 data bits, LSB first] [stop] [stop] [start of next byte]

It is less tolerant of tape speed drift than the slot decoder in
frame_decoder.py and is kept as a second opinion and for diagnostics
(the timing listing shows exactly where a run went wrong).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .config import DecoderConfig
from .crossings import ClassifiedCrossing, Tone
from .errors import FramingMismatchError
from .frame_decoder import DecodedByte

logger = logging.getLogger(__name__)

# |bits - round(bits)| beyond this marks a run as suspect
RUN_ERROR_LIMIT = 0.3


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass(frozen=True)
class ToneRun:
    """A maximal stretch of crossings sharing one tone."""
    tone: Tone
    start_time: float
    end_time: float
    baud_rate: float
    discard_threshold: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def bits_exact(self) -> float:
        return self.duration * self.baud_rate

    @property
    def bits_round(self) -> int:
        return round_half_away(self.bits_exact)

    @property
    def error(self) -> float:
        return self.bits_exact - self.bits_round

    @property
    def discarded(self) -> bool:
        """Runs this long are leader, gaps or silence, not data."""
        return self.bits_exact >= self.discard_threshold

    @property
    def suspect(self) -> bool:
        return abs(self.error) > RUN_ERROR_LIMIT or self.bits_round == 0

    @property
    def bit_count(self) -> int:
        return 0 if self.discarded else self.bits_round


@dataclass
class ToneRunExpansion:
    runs: List[ToneRun] = field(default_factory=list)
    bits: str = ""

    @property
    def kept_runs(self) -> List[ToneRun]:
        return [run for run in self.runs if not run.discarded]

    @property
    def suspect_runs(self) -> List[ToneRun]:
        return [run for run in self.kept_runs if run.suspect]


def expand_tone_runs(crossings: Iterable[ClassifiedCrossing], baud_rate: float,
                     origin: float = 0.0,
                     discard_threshold: float = 100.0) -> ToneRunExpansion:
    """Convert classified crossings into tone runs and a raw bit stream.

    A run is closed when a crossing of the other tone arrives. It spans from
    the last crossing of the previous run to the last crossing of its own
    tone, so each run covers exactly the half periods of its tone. The run
    still open when the crossings end is not emitted.

    Args:
        crossings: Classified crossings in time order
        baud_rate: Nominal bits per second
        origin: Time the signal started; the first run begins here as LOW
        discard_threshold: Runs of at least this many bit periods give no bits
    """
    expansion = ToneRunExpansion()
    bits: List[str] = []
    run_tone = Tone.LOW
    run_start = origin
    last_crossing = origin

    for crossing in crossings:
        if crossing.tone is not run_tone:
            run = ToneRun(run_tone, run_start, last_crossing, baud_rate, discard_threshold)
            expansion.runs.append(run)
            if not run.discarded:
                bits.append(run.tone.symbol * run.bits_round)
                if run.suspect:
                    logger.debug("Suspect %s run at %.6fs: %.2f bits",
                                 run.tone.name, run.start_time, run.bits_exact)
            run_tone = crossing.tone
            run_start = last_crossing
        last_crossing = crossing.time

    expansion.bits = "".join(bits)
    logger.info("Tone runs: %d (%d discarded), %d bits",
                len(expansion.runs), len(expansion.runs) - len(expansion.kept_runs),
                len(expansion.bits))
    return expansion


# ==============================================================================
# Fixed-frame byte reconstruction
# ==============================================================================

@dataclass(frozen=True)
class LegacyByte(DecodedByte):
    bit_index: int = 0
    framing: str = ""
    corrected: bool = False


@dataclass
class LegacyDecodeResult:
    bytes: List[LegacyByte] = field(default_factory=list)
    bit_errors: int = 0
    total_bits: int = 0

    @property
    def data(self) -> bytes:
        return bytes(b.value for b in self.bytes)


def decode_bit_stream(bits: str, config: Optional[DecoderConfig] = None) -> LegacyDecodeResult:
    """Cut a raw bit stream into bytes with 3-symbol framing checks.

    The first symbol is the start bit of the first byte and is skipped.
    A framing group that differs from ``config.framing_pattern`` counts as a
    bit error. Patterns listed in ``config.framing_corrections`` are taken to
    mean a framing bit was lost: the bit is re-inserted by stepping back the
    configured number of symbols. Any other pattern is fatal.

    Raises:
        FramingMismatchError: an uncorrectable framing pattern was found
    """
    config = config or DecoderConfig()
    result = LegacyDecodeResult(total_bits=len(bits))
    expected = config.framing_pattern
    address = config.base_address
    position = 1

    while position + 8 <= len(bits):
        start = position
        data_bits = bits[position:position + 8]
        framing = bits[position + 8:position + 11]
        value = int(data_bits[::-1], 2)
        position += 11

        corrected = False
        if len(framing) == 3 and framing != expected:
            result.bit_errors += 1
            rewind = config.framing_corrections.get(framing)
            if rewind is None:
                raise FramingMismatchError(address, start, framing, expected, partial=result)
            logger.warning("Framing %s after %#06x at bit %d, re-inserting missing bit",
                           framing, address, start)
            position -= rewind
            corrected = True

        result.bytes.append(LegacyByte(address=address, value=value, bit_index=start,
                                       framing=framing, corrected=corrected))
        address += 1

    logger.info("Legacy decode: %d bytes, %d bit errors", len(result.bytes), result.bit_errors)
    return result
