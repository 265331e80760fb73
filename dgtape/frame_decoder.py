"""
Frame synchronizer and byte decoder (primary decoding path).

Each byte on tape is an asynchronous frame:

    start (0, high tone) | 8 data bits, LSB first | 2 stop bits (1, low tone)

The decoder waits for the high tone of a start bit, lays nine slots of one
bit period over the frame and lets every crossing inside a slot vote for
its tone. A slot resolves to 0 only if the high tone wins; ties go to 1.
Voting instead of timing single half periods keeps the decoder working
through tape wow and flutter.

After the frame, the stop-bit gap up to the next start bit is measured.
The tape clock drifts, so an off-length stop gap is reported but the byte
is kept. Frames are re-synchronized on every start bit, so drift never
accumulates across bytes.

Program tapes start with a boot sector at the base address. Its first byte
is a fixed sentinel; anything else is leading noise and is skipped. The
bytes at base+0x20 / base+0x21 hold the last address of the program, at
which decoding stops.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .config import DecoderConfig
from .crossings import ClassifiedCrossing, Tone
from .errors import BootSectorMismatchError, StopBitDriftWarning, StreamTruncatedError

logger = logging.getLogger(__name__)

SLOTS_PER_FRAME = 9   # start bit + 8 data bits


class FrameState(Enum):
    SEEK_START = 0
    IN_FRAME = 1
    CHECK_STOP = 2
    DONE = 3


@dataclass(frozen=True)
class SlotVotes:
    high: int = 0
    low: int = 0

    @property
    def bit(self) -> int:
        return resolve_bit(self.high, self.low)


@dataclass(frozen=True)
class DecodedByte:
    address: int
    value: int
    votes: Tuple[SlotVotes, ...] = ()

    @property
    def addr_hi(self) -> int:
        return self.address >> 8

    @property
    def addr_lo(self) -> int:
        return self.address & 0xFF

    @property
    def bits(self) -> str:
        """Data bits MSB first."""
        return format(self.value, '08b')


@dataclass
class ProgramImage:
    """Everything the frame decoder recovered from one tape."""
    bytes: List[DecodedByte] = field(default_factory=list)
    rejected: List[DecodedByte] = field(default_factory=list)
    stop_bit_warnings: List[StopBitDriftWarning] = field(default_factory=list)
    stop_address: Optional[int] = None
    reached_stop_address: bool = False

    @property
    def data(self) -> bytes:
        return bytes(b.value for b in self.bytes)

    def __len__(self) -> int:
        return len(self.bytes)


def resolve_bit(high: int, low: int) -> int:
    """Majority vote for one slot: 0 if the high tone wins, otherwise 1."""
    return 0 if high > low else 1


def assemble_byte(votes: Sequence[SlotVotes]) -> int:
    """Build a byte from nine slot tallies; slot 0 is the start bit, slot 8 the MSB."""
    value = 0
    for slot in range(SLOTS_PER_FRAME - 1, 0, -1):
        value = (value << 1) | votes[slot].bit
    return value


# ==============================================================================
# Crossing Cursor
# ==============================================================================

class CrossingCursor:
    """Forward-only read position over a materialized crossing sequence."""

    def __init__(self, crossings: Sequence[ClassifiedCrossing]):
        self._crossings = crossings
        self.index = 0

    @property
    def current(self) -> Optional[ClassifiedCrossing]:
        if self.index < len(self._crossings):
            return self._crossings[self.index]
        return None

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self._crossings)

    def advance(self):
        self.index += 1

    def skip_while(self, tone: Tone) -> Optional[ClassifiedCrossing]:
        """Advance past crossings of ``tone``; return the first other one."""
        while self.index < len(self._crossings) and self._crossings[self.index].tone is tone:
            self.index += 1
        return self.current


# ==============================================================================
# Frame Decoder
# ==============================================================================

@dataclass
class DecoderContext:
    """Mutable state of one decoding run."""
    cursor: CrossingCursor
    image: ProgramImage = field(default_factory=ProgramImage)
    state: FrameState = FrameState.SEEK_START
    byte_index: int = 0
    byte_start: float = 0.0
    stop_lo: Optional[int] = None
    stop_hi: Optional[int] = None

    @property
    def stop_address(self) -> Optional[int]:
        if self.stop_lo is None or self.stop_hi is None:
            return None
        return (self.stop_hi << 8) | self.stop_lo


class FrameDecoder:
    """
    Turns classified crossings into addressed bytes.

    Usage:
        decoder = FrameDecoder(config)
        image = decoder.decode(crossings)
    """

    def __init__(self, config: Optional[DecoderConfig] = None):
        self.config = config or DecoderConfig()
        self.slot_width = 1.0 / self.config.baud_rate

    def decode(self, crossings: Sequence[ClassifiedCrossing]) -> ProgramImage:
        """Decode every frame until the stop address or the end of input.

        Raises:
            StreamTruncatedError: the crossings end inside a frame; its
                ``partial`` image holds the bytes decoded so far
        """
        ctx = DecoderContext(cursor=CrossingCursor(crossings))

        while ctx.state is not FrameState.DONE:
            if ctx.state is FrameState.SEEK_START:
                self.seek_start(ctx)
            elif ctx.state is FrameState.IN_FRAME:
                self.read_frame(ctx)
            elif ctx.state is FrameState.CHECK_STOP:
                self.check_stop(ctx)

        image = ctx.image
        logger.info("Decoded %d bytes (%d rejected, %d stop-bit warnings)",
                    len(image.bytes), len(image.rejected), len(image.stop_bit_warnings))
        return image

    def address_of(self, ctx: DecoderContext) -> int:
        return self.config.base_address + ctx.byte_index

    def seek_start(self, ctx: DecoderContext):
        """SEEK_START: find the high tone of the next start bit."""
        start = ctx.cursor.skip_while(Tone.LOW)
        if start is None:
            ctx.state = FrameState.DONE
            return
        ctx.byte_start = start.start_time
        ctx.state = FrameState.IN_FRAME

    def read_frame(self, ctx: DecoderContext):
        """IN_FRAME: tally nine slots and accept or reject the byte."""
        address = self.address_of(ctx)
        votes = self.sample_slots(ctx, address)
        decoded = DecodedByte(address=address, value=assemble_byte(votes), votes=tuple(votes))

        try:
            self.check_boot_sector(ctx, decoded)
        except BootSectorMismatchError as e:
            logger.warning("%s; skipping", e)
            ctx.image.rejected.append(decoded)
            # A high last data bit may still be under the cursor. After a low
            # one, any high tone here already belongs to the next start bit.
            if votes[-1].bit == 0:
                ctx.cursor.skip_while(Tone.HIGH)
            ctx.state = FrameState.SEEK_START
            return

        self.accept(ctx, decoded)

    def sample_slots(self, ctx: DecoderContext, address: int) -> List[SlotVotes]:
        cursor = ctx.cursor
        votes: List[SlotVotes] = []
        for slot in range(SLOTS_PER_FRAME):
            slot_end = ctx.byte_start + (slot + 1) * self.slot_width
            high = low = 0
            while True:
                crossing = cursor.current
                if crossing is None:
                    raise StreamTruncatedError(address, ctx.byte_index, slot,
                                               votes + [SlotVotes(high, low)], ctx.byte_start,
                                               partial=ctx.image)
                if crossing.time >= slot_end:
                    break
                if crossing.tone is Tone.HIGH:
                    high += 1
                else:
                    low += 1
                cursor.advance()
            votes.append(SlotVotes(high, low))
        return votes

    def check_boot_sector(self, ctx: DecoderContext, decoded: DecodedByte):
        """Raise BootSectorMismatchError if the first byte is not the sentinel."""
        config = self.config
        if config.program_mode or ctx.stop_address is not None:
            return
        if decoded.address == config.base_address and decoded.value != config.boot_sentinel:
            raise BootSectorMismatchError(decoded.address, decoded.value, config.boot_sentinel)

    def accept(self, ctx: DecoderContext, decoded: DecodedByte):
        config = self.config
        ctx.image.bytes.append(decoded)
        logger.debug("%04x  %s  %03o  (%d)", decoded.address, decoded.bits,
                     decoded.value, decoded.value)

        if not config.program_mode:
            if decoded.address == config.stop_address_lo:
                ctx.stop_lo = decoded.value
            elif decoded.address == config.stop_address_hi:
                ctx.stop_hi = decoded.value

            stop_address = ctx.image.stop_address = ctx.stop_address
            if stop_address is not None and decoded.address >= stop_address:
                logger.info("Reached stop address %#06x", stop_address)
                ctx.image.reached_stop_address = True
                ctx.state = FrameState.DONE
                return

        ctx.byte_index += 1
        ctx.state = FrameState.CHECK_STOP

    def check_stop(self, ctx: DecoderContext):
        """CHECK_STOP: measure the low-tone gap before the next start bit."""
        cursor = ctx.cursor
        address = self.address_of(ctx) - 1

        # Still inside a high-tone last data bit?
        first_low = cursor.skip_while(Tone.HIGH)
        if first_low is None:
            ctx.state = FrameState.DONE
            return
        stop_start = first_low.start_time

        next_start = cursor.skip_while(Tone.LOW)
        if next_start is None:
            ctx.state = FrameState.DONE
            return

        duration = next_start.start_time - stop_start
        stop_bits = duration * self.config.baud_rate
        if abs(self.config.stop_bits_expected - stop_bits) > self.config.stop_bit_tolerance:
            warning = StopBitDriftWarning(address, stop_bits, self.config.stop_bits_expected, duration)
            ctx.image.stop_bit_warnings.append(warning)
            logger.warning("%s", warning)
        else:
            logger.debug("stop bit duration: %.6f (%.2f)", duration, stop_bits)

        ctx.state = FrameState.SEEK_START


def decode_frames(crossings: Sequence[ClassifiedCrossing],
                  config: Optional[DecoderConfig] = None) -> ProgramImage:
    """Convenience wrapper around FrameDecoder.decode()."""
    return FrameDecoder(config).decode(crossings)
