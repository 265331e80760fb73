"""
Waveform Loading Tests

Run with: pytest tests/test_waveform.py -v
"""

import os
import sys

import numpy as np
import pytest
from scipy.io import wavfile

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dgtape.errors import MalformedSampleError
from dgtape.tape_encoder import save_dat, save_wav
from dgtape.waveform import (
    Waveform,
    load_dat,
    load_wav,
    load_waveform,
    parse_sample_line,
)


class TestParseSampleLine:
    """Single text records"""

    def test_time_and_amplitude(self):
        assert parse_sample_line("0.001 0.5") == (0.001, 0.5)

    def test_last_field_is_amplitude(self):
        """Multi-channel SoX output: first field time, last field amplitude"""
        assert parse_sample_line("  0.25\t0.1  -0.75 \n") == (0.25, -0.75)

    @pytest.mark.parametrize("line", ["0.002", "", "abc 1", "0.1 x", "nan 0.2", "0.1 inf"])
    def test_malformed(self, line):
        with pytest.raises(MalformedSampleError):
            parse_sample_line(line, 7)

    def test_error_carries_line_number(self):
        with pytest.raises(MalformedSampleError) as excinfo:
            parse_sample_line("oops", 12)
        assert excinfo.value.line_number == 12
        assert "line 12" in str(excinfo.value)


class TestLoadDat:
    """SoX text files"""

    def test_comments_and_bad_lines_are_skipped(self, tmp_path):
        path = tmp_path / "tape.dat"
        path.write_text(
            "; Sample Rate 8000\n"
            "; Channels 1\n"
            "0 0.1\n"
            "0.001 0.6\n"
            "bad line here\n"
            "0.002\n"
            "0.001 0.3\n"
            "\n"
            "0.003 -0.6\n"
        )
        waveform = load_dat(str(path))
        assert waveform.times.tolist() == [0.0, 0.001, 0.003]
        assert waveform.amplitudes.tolist() == [0.1, 0.6, -0.6]
        assert waveform.skipped_lines == 3
        assert waveform.sample_rate is None

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.dat"
        path.write_text("; Sample Rate 44100\n")
        waveform = load_dat(str(path))
        assert len(waveform) == 0
        assert waveform.duration == 0.0

    def test_save_and_reload(self, tmp_path):
        original = Waveform.from_samples([0.1, -0.2, 0.3, 0.0], 8000)
        path = str(tmp_path / "out.dat")
        save_dat(original, path)
        loaded = load_dat(path)
        np.testing.assert_allclose(loaded.times, original.times, atol=1e-9)
        np.testing.assert_allclose(loaded.amplitudes, original.amplitudes, atol=1e-9)
        assert loaded.skipped_lines == 0


class TestLoadWav:
    """WAV files via scipy"""

    def test_save_and_reload(self, tmp_path):
        t = np.arange(441) / 44100
        original = Waveform.from_samples(0.8 * np.sin(2 * np.pi * 2125 * t), 44100)
        path = str(tmp_path / "tone.wav")
        save_wav(original, path)
        loaded = load_wav(path)
        assert loaded.sample_rate == 44100
        assert len(loaded) == len(original)
        np.testing.assert_allclose(loaded.amplitudes, original.amplitudes, atol=1e-4)

    def test_first_channel_of_stereo(self, tmp_path):
        path = str(tmp_path / "stereo.wav")
        data = np.array([[16384, -1000], [-16384, 1000], [0, 5]], dtype=np.int16)
        wavfile.write(path, 22050, data)
        loaded = load_wav(path)
        assert loaded.amplitudes.tolist() == [0.5, -0.5, 0.0]
        assert loaded.times[1] == pytest.approx(1 / 22050)

    def test_unsigned_8bit_is_centered(self, tmp_path):
        path = str(tmp_path / "u8.wav")
        wavfile.write(path, 8000, np.array([128, 255, 0], dtype=np.uint8))
        loaded = load_wav(path)
        np.testing.assert_allclose(loaded.amplitudes, [0.0, 127 / 128, -1.0])

    def test_save_requires_sample_rate(self, tmp_path):
        waveform = Waveform(times=np.array([0.0, 0.1]), amplitudes=np.array([0.0, 0.5]))
        with pytest.raises(ValueError):
            save_wav(waveform, str(tmp_path / "x.wav"))


class TestWaveform:
    """Container behaviour"""

    def test_length_mismatch_rejected(self):
        with pytest.raises(ValueError):
            Waveform(times=np.zeros(3), amplitudes=np.zeros(2))

    def test_from_samples(self):
        waveform = Waveform.from_samples([0.0, 1.0, 0.0], 4, start_time=2.0)
        assert list(waveform) == [(2.0, 0.0), (2.25, 1.0), (2.5, 0.0)]
        assert waveform.duration == pytest.approx(0.5)
        assert waveform.sample_rate == 4.0

    def test_loader_dispatch(self, tmp_path):
        waveform = Waveform.from_samples([0.0, 0.5, -0.5], 8000)
        wav_path = str(tmp_path / "a.WAV")
        dat_path = str(tmp_path / "a.dat")
        save_wav(waveform, wav_path)
        save_dat(waveform, dat_path)
        assert load_waveform(wav_path).sample_rate == 8000
        assert load_waveform(dat_path).sample_rate is None
