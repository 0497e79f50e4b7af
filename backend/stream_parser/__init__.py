"""Stream parsing: frame extraction, incremental record parsing and ratio normalization."""

from .frame import (
    FRAME_CLOSE_MARKER,
    FRAME_OPEN_MARKER,
    FrameExtractor,
    extract_payload,
    iterate_async,
)
from .records import (
    MalformedRecord,
    ParsedRecord,
    RecordScanner,
    StreamRecord,
    classify_record,
    iter_records,
    parse_records,
)
from .normalize import RATIO_TOLERANCE, NormalizationError, normalize_ratios

__all__ = [
    'FRAME_CLOSE_MARKER',
    'FRAME_OPEN_MARKER',
    'FrameExtractor',
    'extract_payload',
    'iterate_async',
    'MalformedRecord',
    'ParsedRecord',
    'RecordScanner',
    'StreamRecord',
    'classify_record',
    'iter_records',
    'parse_records',
    'RATIO_TOLERANCE',
    'NormalizationError',
    'normalize_ratios',
]
