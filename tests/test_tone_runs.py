"""
Tone-Run Bit Expander and Legacy Byte Reconstruction Tests

Run with: pytest tests/test_tone_runs.py -v
"""

import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dgtape.config import DecoderConfig
from dgtape.crossings import ClassifiedCrossing, Tone
from dgtape.errors import FramingMismatchError
from dgtape.tape_decoder import decode_waveform
from dgtape.tape_encoder import encode_bytes, frame_bytes, half_cycles_per_bit
from dgtape.tone_runs import ToneRun, decode_bit_stream, expand_tone_runs, round_half_away


CONFIG = DecoderConfig()
BAUD = CONFIG.baud_rate


def crossings_for_bits(bits, config=CONFIG, t0=0.0):
    out = []
    period = config.bit_period
    for i, bit in enumerate(bits):
        freq = config.low_freq if bit else config.high_freq
        tone = Tone.LOW if bit else Tone.HIGH
        n = half_cycles_per_bit(freq, config.baud_rate)
        d = period / n
        for k in range(1, n + 1):
            out.append(ClassifiedCrossing(t0 + i * period + k * d, d, 1 / (2 * d), tone))
    return out


def lsb_first(value):
    return "".join(str((value >> i) & 1) for i in range(8))


class TestRounding:
    """Half-away-from-zero rounding"""

    def test_halves_round_away(self):
        assert round_half_away(0.5) == 1
        assert round_half_away(1.5) == 2
        assert round_half_away(2.5) == 3
        assert round_half_away(-0.5) == -1
        assert round_half_away(-2.5) == -3

    def test_ordinary_values(self):
        assert round_half_away(2.49) == 2
        assert round_half_away(2.51) == 3
        assert round_half_away(0.0) == 0
        assert round_half_away(-1.2) == -1


class TestToneRun:
    """Run attributes"""

    def test_bit_counts(self):
        run = ToneRun(Tone.HIGH, 1.0, 1.0 + 3.4 / BAUD, BAUD, 100.0)
        assert run.bits_exact == pytest.approx(3.4)
        assert run.bits_round == 3
        assert run.error == pytest.approx(0.4)
        assert run.suspect
        assert not run.discarded
        assert run.bit_count == 3

    def test_long_run_discarded(self):
        run = ToneRun(Tone.LOW, 0.0, 150 / BAUD, BAUD, 100.0)
        assert run.discarded
        assert run.bit_count == 0

    def test_threshold_is_inclusive(self):
        assert ToneRun(Tone.LOW, 0.0, 100.0 / BAUD, BAUD, 100.0).discarded
        assert not ToneRun(Tone.LOW, 0.0, 99.0 / BAUD, BAUD, 100.0).discarded


class TestExpansion:
    """Classified crossings -> runs -> bit stream"""

    def test_long_run_contributes_no_bits(self):
        bits = [1] * 150 + [0] * 3 + [1] * 2 + [0]
        expansion = expand_tone_runs(crossings_for_bits(bits), BAUD)
        assert expansion.bits == "00011"
        assert expansion.runs[0].discarded
        assert len(expansion.kept_runs) == 2

    def test_ninety_nine_bit_run_is_kept(self):
        bits = [1] * 99 + [0] * 2 + [1]
        expansion = expand_tone_runs(crossings_for_bits(bits), BAUD)
        assert expansion.bits == "1" * 99 + "00"

    def test_open_run_at_end_is_not_emitted(self):
        bits = [0] * 2 + [1] * 5
        expansion = expand_tone_runs(crossings_for_bits(bits), BAUD)
        # Initial LOW run is empty, the HIGH run closes, the LOW run stays open
        assert expansion.bits == "00"
        assert expansion.runs[0].bits_round == 0

    def test_run_boundaries(self):
        bits = [1] * 120 + [0, 0, 1, 1, 1, 0]
        crossings = crossings_for_bits(bits)
        expansion = expand_tone_runs(crossings, BAUD)
        high = expansion.runs[1]
        assert high.tone is Tone.HIGH
        assert high.start_time == pytest.approx(120 / BAUD)
        assert high.end_time == pytest.approx(122 / BAUD)
        assert high.duration == pytest.approx(2 / BAUD)

    def test_no_suspect_runs_on_clean_signal(self):
        bits = frame_bytes([0x53, 0x01, 0x02])
        expansion = expand_tone_runs(crossings_for_bits(bits), BAUD)
        assert expansion.suspect_runs == []


class TestBitStreamDecoding:
    """Fixed 11-bit framing"""

    def test_clean_stream(self):
        bits = "0" + lsb_first(0x53) + "110" + lsb_first(0x01) + "110" + lsb_first(0xFE)
        result = decode_bit_stream(bits)
        assert result.data == bytes([0x53, 0x01, 0xFE])
        assert [b.address for b in result.bytes] == [0x100, 0x101, 0x102]
        assert result.bit_errors == 0

    def test_missing_start_bit_is_reinserted(self):
        """'111' after a byte: the next start bit was lost"""
        bits = ("0" + lsb_first(0x53) + "11" + lsb_first(0x01) + "110" + lsb_first(0x44))
        result = decode_bit_stream(bits)
        assert result.data == bytes([0x53, 0x01, 0x44])
        assert result.bit_errors == 1
        assert result.bytes[0].corrected
        assert result.bytes[0].framing == "111"
        assert not result.bytes[1].corrected

    def test_uncorrectable_pattern_is_fatal(self):
        bits = "0" + lsb_first(0x53) + "010" + lsb_first(0x01) + "110"
        with pytest.raises(FramingMismatchError) as excinfo:
            decode_bit_stream(bits)
        assert excinfo.value.pattern == "010"
        assert excinfo.value.address == 0x100
        assert "couldn't finish" in str(excinfo.value)

    def test_error_keeps_bytes_before_bad_framing(self):
        bits = "0" + lsb_first(0x53) + "110" + lsb_first(0x01) + "010" + lsb_first(0x02)
        with pytest.raises(FramingMismatchError) as excinfo:
            decode_bit_stream(bits)
        assert excinfo.value.address == 0x101
        assert excinfo.value.partial.data == bytes([0x53])
        assert excinfo.value.partial.bit_errors == 1

    def test_correction_table_is_configurable(self):
        config = DecoderConfig(framing_corrections={"010": 1})
        bits = "0" + lsb_first(0x53) + "01" + lsb_first(0x02) + "110"
        result = decode_bit_stream(bits, config)
        assert result.data == bytes([0x53, 0x02])
        with pytest.raises(FramingMismatchError):
            decode_bit_stream("0" + lsb_first(0x53) + "111" + lsb_first(0x02), config)

    def test_short_tail_is_dropped(self):
        bits = "0" + lsb_first(0x53) + "110" + "1010"
        result = decode_bit_stream(bits)
        assert result.data == bytes([0x53])

    def test_legacy_decode_of_encoded_waveform(self):
        """Both strategies agree on a clean recording"""
        values = [0o123, 0x01, 0x02, 0x00]
        config = DecoderConfig(program_mode=True)
        result = decode_waveform(encode_bytes(values, config), config, legacy=True)
        assert result.legacy.data == bytes(values)
        assert result.legacy.bit_errors == 0
        assert result.image.data == bytes(values)
        assert result.data == result.legacy.data
