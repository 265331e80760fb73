"""
Tape Decoder: waveform to program image pipeline.

Decodes a cassette recording of a Digital Group program into memory bytes.

Decoder pipeline (bottom to top):
1. Zero-crossing detection (linear interpolation between samples)
2. Half-period frequency → HIGH / LOW tone per crossing
3a. Frame synchronization + slot majority vote → addressed bytes (primary)
3b. Tone-run lengths → raw bit stream → fixed 11-bit frames (legacy)

Both decoders read the same materialized list of classified crossings.
A fatal error in one decoder does not discard the other stages: the
result keeps the crossing analysis, the tone runs, the partial output
of the failed decoder and the error itself.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import DecoderConfig
from .crossings import ClassifiedCrossing, FrequencyClassifier, ZeroCrossingDetector
from .errors import FramingMismatchError, StreamTruncatedError, TapeDecodeError
from .frame_decoder import FrameDecoder, ProgramImage
from .tone_runs import LegacyDecodeResult, ToneRunExpansion, decode_bit_stream, expand_tone_runs
from .waveform import Waveform, load_waveform

logger = logging.getLogger(__name__)


@dataclass
class CrossingAnalysis:
    """Output of stage one."""
    crossings: List[ClassifiedCrossing] = field(default_factory=list)
    start_time: Optional[float] = None   # None if the signal never got loud enough
    degenerate_count: int = 0

    @property
    def started(self) -> bool:
        return self.start_time is not None


@dataclass
class TapeDecodeResult:
    analysis: CrossingAnalysis
    runs: ToneRunExpansion
    image: ProgramImage
    legacy: Optional[LegacyDecodeResult] = None
    skipped_lines: int = 0
    image_error: Optional[StreamTruncatedError] = None
    legacy_error: Optional[FramingMismatchError] = None

    @property
    def data(self) -> bytes:
        """Bytes of the chosen strategy (legacy if it was requested)."""
        if self.legacy is not None:
            return self.legacy.data
        return self.image.data

    @property
    def errors(self) -> List[TapeDecodeError]:
        return [e for e in (self.image_error, self.legacy_error) if e is not None]

    @property
    def chosen_error(self) -> Optional[TapeDecodeError]:
        """Error of the strategy whose bytes .data returns."""
        return self.legacy_error if self.legacy is not None else self.image_error

    def raise_for_error(self):
        """Re-raise the first fatal decoder error, if any."""
        if self.errors:
            raise self.errors[0]


def classify_waveform(waveform: Waveform, config: Optional[DecoderConfig] = None) -> CrossingAnalysis:
    """Detect and classify every zero crossing of a waveform."""
    config = config or DecoderConfig()
    detector = ZeroCrossingDetector(config.start_threshold)
    classifier = FrequencyClassifier(config.high_freq, config.low_freq)

    crossings = list(classifier.classify(detector.detect(waveform)))

    if detector.start_time is None:
        logger.warning("Signal never reached start threshold %.2f", config.start_threshold)
    if classifier.degenerate_count:
        logger.warning("%d degenerate crossing(s) classified as high tone",
                       classifier.degenerate_count)
    logger.info("%d zero crossings", len(crossings))

    return CrossingAnalysis(crossings=crossings, start_time=detector.start_time,
                            degenerate_count=classifier.degenerate_count)


def decode_waveform(waveform: Waveform, config: Optional[DecoderConfig] = None,
                    legacy: bool = False) -> TapeDecodeResult:
    """Run the full pipeline on a loaded waveform.

    Args:
        waveform: Samples to decode
        config: Decoder settings (defaults to the Digital Group format)
        legacy: Also rebuild bytes from the tone-run bit stream

    A recording that ends inside a byte (StreamTruncatedError) or legacy
    framing that cannot be repaired (FramingMismatchError) is reported in
    ``image_error`` / ``legacy_error`` instead of raised; call
    ``raise_for_error()`` to turn it back into an exception.
    """
    config = config or DecoderConfig()
    analysis = classify_waveform(waveform, config)

    origin = analysis.start_time if analysis.start_time is not None else 0.0
    runs = expand_tone_runs(analysis.crossings, config.baud_rate, origin,
                            config.run_discard_threshold)

    image_error = None
    try:
        image = FrameDecoder(config).decode(analysis.crossings)
    except StreamTruncatedError as e:
        logger.error("Frame decoder stopped: %s", e)
        image_error = e
        image = e.partial if e.partial is not None else ProgramImage()

    legacy_result = legacy_error = None
    if legacy:
        try:
            legacy_result = decode_bit_stream(runs.bits, config)
        except FramingMismatchError as e:
            logger.error("Legacy decoder stopped: %s", e)
            legacy_error = e
            legacy_result = e.partial if e.partial is not None else LegacyDecodeResult()

    return TapeDecodeResult(analysis=analysis, runs=runs, image=image,
                            legacy=legacy_result, skipped_lines=waveform.skipped_lines,
                            image_error=image_error, legacy_error=legacy_error)


def decode_file(filename: str, config: Optional[DecoderConfig] = None,
                legacy: bool = False) -> TapeDecodeResult:
    """Load a .dat or .wav recording and decode it."""
    waveform = load_waveform(filename)
    return decode_waveform(waveform, config, legacy)
