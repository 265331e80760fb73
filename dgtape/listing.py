"""
Output writers: program image, C header, memory listing and diagnostics.

Addresses are shown the way the Digital Group documentation prints them,
as split octal ``page offset`` pairs, e.g. ``1 40`` for 0x0120.
"""

import logging
from typing import Iterable, List

from .crossings import ClassifiedCrossing
from .frame_decoder import DecodedByte, ProgramImage
from .tone_runs import LegacyDecodeResult, ToneRun

logger = logging.getLogger(__name__)

HEADER_ARRAY = "prog_uchar loadprogram[] PROGMEM ="
HEADER_COLUMNS = 8


def format_octal_address(address: int) -> str:
    return f"{address >> 8:o} {address & 0xFF:o}"


def format_byte_line(byte: DecodedByte) -> str:
    return f"{format_octal_address(byte.address)}\t{byte.bits}\t{byte.value:o}\t({byte.value})"


def format_listing(image: ProgramImage) -> List[str]:
    """Memory listing, one line per byte, in tape order."""
    drift = {w.address: w for w in image.stop_bit_warnings}
    lines = []
    for byte in image.rejected:
        lines.append(f"{format_byte_line(byte)}\tbad byte, skipping")
    for byte in image.bytes:
        line = format_byte_line(byte)
        warning = drift.get(byte.address)
        if warning is not None:
            line += f"\tstop bits {warning.measured_bits:.2f} **"
        lines.append(line)
    if image.stop_address is not None:
        lines.append(f"stop address {format_octal_address(image.stop_address)}")
    return lines


def format_legacy_listing(result: LegacyDecodeResult) -> List[str]:
    lines = []
    for byte in result.bytes:
        low_nibble = byte.bits[::-1][:4]
        high_nibble = byte.bits[::-1][4:]
        line = (f"{format_octal_address(byte.address)}:\t\t{low_nibble} {high_nibble} "
                f"{byte.framing}\t({byte.value:o})\t{byte.bit_index}")
        if byte.corrected:
            line += f"\t*({byte.framing})"
        lines.append(line)
    lines.append(f"there were {result.bit_errors} bit errors.")
    return lines


def format_c_header(values: Iterable[int]) -> str:
    """Byte array for inclusion in a microcontroller loader sketch."""
    parts = [f"{HEADER_ARRAY}\n", "{\n"]
    column = 0
    for value in values:
        parts.append(f"0x{value:x},\t")
        column += 1
        if column == HEADER_COLUMNS:
            parts.append("\n")
            column = 0
    parts.append("};\n")
    return "".join(parts)


def write_binary(filename: str, data: bytes):
    with open(filename, 'wb') as f:
        f.write(data)
    logger.info("Wrote %d bytes to %s", len(data), filename)


def write_c_header(filename: str, values: Iterable[int]):
    with open(filename, 'w', encoding='utf-8') as f:
        f.write(format_c_header(values))


def write_lines(filename: str, lines: Iterable[str]):
    with open(filename, 'w', encoding='utf-8') as f:
        for line in lines:
            f.write(line + "\n")


def write_listing(filename: str, image: ProgramImage):
    write_lines(filename, format_listing(image))


def write_zero_crossings(filename: str, crossings: Iterable[ClassifiedCrossing]):
    """Diagnostic: time, half-period duration and frequency of each crossing."""
    write_lines(filename, (f"{c.time}\t{c.duration}\t{c.frequency}" for c in crossings))


def write_timing(filename: str, runs: Iterable[ToneRun]):
    """Diagnostic: one line per kept tone run."""
    write_lines(filename, (
        f"{run.tone.bit}\t{run.start_time}\t{run.end_time}\t[{run.bits_round}]\t"
        f"{run.bits_exact:0.2f}\t{run.error}\t{run.duration}"
        for run in runs if not run.discarded
    ))


def write_bits(filename: str, bits: str):
    with open(filename, 'w', encoding='utf-8') as f:
        f.write(bits)
