"""
Command line front end.

    dgtape recording.dat              # decode a boot tape
    dgtape recording.wav --program    # raw program data, decode to the end
    dgtape recording.dat --legacy     # also rebuild bytes from tone runs
    dgtape --selftest                 # encode a test program and decode it
    dgtape --selftest -o /tmp/st      # same, keeping /tmp/st.wav and outputs

Outputs go next to the input (or to --output PREFIX):
PREFIX.bin, PREFIX.h, PREFIX.lst and, unless --no-diagnostics,
PREFIX.zero.txt, PREFIX.timing.txt, PREFIX.bits.txt.

When a decoder hits a fatal error the diagnostics and the listing are
still written, so the damaged spot can be inspected; PREFIX.bin and
PREFIX.h are only written when the chosen decoder finished. With --legacy
the tone-run bytes are written even if the frame decoder failed. Any
fatal error gives exit status 1.
"""

import argparse
import logging
import os
import sys
import tempfile
from typing import List, Optional

from . import __version__
from .config import DecoderConfig, load_config
from .errors import TapeDecodeError
from .listing import (format_legacy_listing, format_listing, write_binary, write_bits,
                      write_c_header, write_lines, write_listing, write_timing,
                      write_zero_crossings)
from .tape_decoder import TapeDecodeResult, decode_file
from .tape_encoder import encode_bytes, save_wav

EXIT_OK = 0
EXIT_DECODE_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dgtape',
        description='Decode Digital Group cassette recordings into program images.')
    parser.add_argument('input', nargs='?', help='Waveform to decode (.dat text or .wav)')
    parser.add_argument('-o', '--output',
                        help='Output path prefix (default: input without extension; '
                             'with --selftest, keeps the test files under this prefix)')
    parser.add_argument('--program', action='store_true',
                        help='Raw program data: no boot sentinel check or stop address')
    parser.add_argument('--legacy', action='store_true',
                        help='Write bytes rebuilt from tone-run lengths instead of slot votes')
    parser.add_argument('--config', help='JSON file with decoder settings')
    parser.add_argument('--baud', type=float, help='Baud rate (default 1105)')
    parser.add_argument('--high-freq', type=float, help='Frequency of a 0 bit in Hz (default 2975)')
    parser.add_argument('--low-freq', type=float, help='Frequency of a 1 bit in Hz (default 2125)')
    parser.add_argument('--stop-tolerance', type=float,
                        help='Allowed stop-bit deviation in bit periods (default 0.3)')
    parser.add_argument('--no-diagnostics', action='store_true',
                        help='Skip the zero-crossing, timing and bit stream files')
    parser.add_argument('--selftest', action='store_true',
                        help='Encode a test program to WAV, decode it and compare')
    parser.add_argument('--debug', action='store_true', help='Per-byte decoder trace')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def config_from_args(args: argparse.Namespace) -> DecoderConfig:
    config = load_config(args.config) if args.config else DecoderConfig()
    changes = {}
    if args.program:
        changes['program_mode'] = True
    if args.baud is not None:
        changes['baud_rate'] = args.baud
    if args.high_freq is not None or args.low_freq is not None:
        high = args.high_freq if args.high_freq is not None else config.high_freq
        low = args.low_freq if args.low_freq is not None else config.low_freq
        changes['tone_frequencies'] = (high, low)
    if args.stop_tolerance is not None:
        changes['stop_bit_tolerance'] = args.stop_tolerance
    return config.replace(**changes) if changes else config.validate()


def write_outputs(result: TapeDecodeResult, prefix: str, diagnostics: bool = True):
    if diagnostics:
        write_zero_crossings(prefix + ".zero.txt", result.analysis.crossings)
        write_timing(prefix + ".timing.txt", result.runs.runs)
        write_bits(prefix + ".bits.txt", result.runs.bits)

    if result.legacy is not None:
        write_lines(prefix + ".lst", format_legacy_listing(result.legacy))
    else:
        write_listing(prefix + ".lst", result.image)

    if result.chosen_error is None:
        data = result.data
        write_binary(prefix + ".bin", data)
        write_c_header(prefix + ".h", data)


def print_summary(result: TapeDecodeResult, verbose: bool = False):
    image = result.image
    if result.skipped_lines:
        print(f"  Skipped sample lines: {result.skipped_lines}")
    print(f"  Zero crossings: {len(result.analysis.crossings)}")
    print(f"  Total bits (tone runs): {len(result.runs.bits)}")
    print(f"  Bytes decoded: {len(image.bytes)}")
    if image.rejected:
        print(f"  Bad leading bytes skipped: {len(image.rejected)}")
    print(f"  Stop-bit warnings: {len(image.stop_bit_warnings)}")
    if image.stop_address is not None:
        state = "reached" if image.reached_stop_address else "not reached"
        print(f"  Stop address: {image.stop_address:#06x} ({state})")
    if result.legacy is not None:
        print(f"  Legacy decode: {len(result.legacy.bytes)} bytes, "
              f"{result.legacy.bit_errors} bit errors")
    if verbose:
        for line in format_listing(image):
            print(f"    {line}")


def selftest_program(length: int = 64) -> List[int]:
    """A boot-tape image: sentinel, filler, stop address, payload."""
    config = DecoderConfig()
    terminal = config.base_address + length - 1
    program = [config.boot_sentinel] + [(i * 37 + 11) & 0xFF for i in range(1, length)]
    program[config.stop_address_offsets[0]] = terminal & 0xFF
    program[config.stop_address_offsets[1]] = terminal >> 8
    return program


def run_selftest(prefix: Optional[str] = None) -> int:
    """Encode, decode and compare a test program.

    Files go to PREFIX.wav, PREFIX.bin, ... when a prefix is given;
    otherwise to a temporary directory that is removed afterwards.
    """
    if prefix is None:
        with tempfile.TemporaryDirectory(prefix="dgtape_") as tmpdir:
            return run_selftest(os.path.join(tmpdir, "selftest"))

    program = selftest_program()
    # Leading noise byte the boot check has to skip
    waveform = encode_bytes([0xA5] + program)
    wav_path = prefix + ".wav"
    save_wav(waveform, wav_path)
    print(f"Wrote {wav_path}")

    result = decode_file(wav_path, legacy=False)
    write_outputs(result, prefix)
    print_summary(result)

    if result.errors or result.image.data != bytes(program):
        print("Self-test FAILED: decoded bytes differ from the encoded program")
        return EXIT_DECODE_ERROR
    print(f"Self-test passed: {len(program)} bytes recovered")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format='[%(asctime)s] %(levelname)s:%(name)s:%(message)s',
                        datefmt='%Y-%m-%d %H:%M:%S')

    if args.selftest:
        return run_selftest(args.output)
    if not args.input:
        parser.error("an input waveform is required (or use --selftest)")

    try:
        config = config_from_args(args)
    except (OSError, ValueError) as e:
        print(f"Error: bad configuration: {e}")
        return EXIT_DECODE_ERROR

    prefix = args.output or os.path.splitext(args.input)[0]

    print(f"Decoding: {args.input}")
    try:
        result = decode_file(args.input, config, legacy=args.legacy)
    except TapeDecodeError as e:
        print(f"Error: {e}")
        return EXIT_DECODE_ERROR
    except (OSError, ValueError) as e:
        print(f"Error: cannot read {args.input}: {e}")
        return EXIT_DECODE_ERROR

    write_outputs(result, prefix, diagnostics=not args.no_diagnostics)

    if result.errors:
        for error in result.errors:
            print(f"Error: {error}")
        if result.chosen_error is None:
            print(f"Legacy bytes written despite the error -> {prefix}.bin")
        print_summary(result, verbose=args.debug)
        return EXIT_DECODE_ERROR

    print(f"Decoded successfully! -> {prefix}.bin")
    print_summary(result, verbose=args.debug)
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
