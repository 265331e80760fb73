"""
dgtape
Recovers Digital Group 8080 programs from cassette tape recordings
"""

__version__ = "1.0.0"

from .config import DecoderConfig
from .crossings import Tone, ZeroCrossingDetector, FrequencyClassifier, ClassifiedCrossing
from .frame_decoder import FrameDecoder, ProgramImage, DecodedByte, resolve_bit
from .tone_runs import expand_tone_runs, decode_bit_stream
from .tape_decoder import decode_waveform, decode_file
from .errors import (
    TapeDecodeError,
    MalformedSampleError,
    FramingMismatchError,
    BootSectorMismatchError,
    StreamTruncatedError,
    StopBitDriftWarning,
)

__all__ = [
    'DecoderConfig',
    'Tone',
    'ZeroCrossingDetector',
    'FrequencyClassifier',
    'ClassifiedCrossing',
    'FrameDecoder',
    'ProgramImage',
    'DecodedByte',
    'resolve_bit',
    'expand_tone_runs',
    'decode_bit_stream',
    'decode_waveform',
    'decode_file',
    'TapeDecodeError',
    'MalformedSampleError',
    'FramingMismatchError',
    'BootSectorMismatchError',
    'StreamTruncatedError',
    'StopBitDriftWarning',
]
