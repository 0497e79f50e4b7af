"""Ratio normalization for a completed batch of records."""

import logging
import os
from typing import List, Sequence

from dotenv import load_dotenv

from .records import StreamRecord

load_dotenv()

# Batches whose ratios already sum to 1 within this tolerance are returned as-is
RATIO_TOLERANCE = float(os.getenv("RATIO_TOLERANCE", "1e-9"))

logger = logging.getLogger(__name__)


class NormalizationError(ValueError):
    """Raised when a batch has no records or no positive total ratio."""


def normalize_ratios(records: Sequence[StreamRecord], tolerance: float = RATIO_TOLERANCE) -> List[StreamRecord]:
    """
    Rescale ratios so the batch sums to 1, keeping every pairwise proportion.

    Returns a new list; the input records are not modified.
    """
    if not records:
        raise NormalizationError("Cannot normalize an empty batch of records")

    total = sum(record.ratio for record in records)
    if total <= 0:
        raise NormalizationError(f"Cannot normalize ratios with non-positive sum {total}")

    if abs(total - 1) <= tolerance:
        return list(records)

    logger.debug("Normalizing %d ratios (sum=%.4f)", len(records), total)
    return [record.model_copy(update={"ratio": record.ratio / total}) for record in records]
