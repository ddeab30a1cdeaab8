import math
from dataclasses import dataclass

from minefilings.config import settings
from minefilings.extraction.models import METRIC_FIELDS, ExtractedMetrics

# Grade counts once, and only together with its unit
CHECKLIST: tuple[str, ...] = METRIC_FIELDS
CHECKLIST_SIZE = len(CHECKLIST)


@dataclass(frozen=True)
class Score:
    found: int
    confidence: float  # 0-10
    accepted: bool


def count_found(metrics: ExtractedMetrics) -> int:
    found = 0
    for name in CHECKLIST:
        if getattr(metrics, name) is None:
            continue
        if name == "resource_grade" and not metrics.resource_grade_unit:
            continue
        found += 1
    return found


def confidence_score(found: int) -> float:
    return round(min(10.0, 10.0 * found / CHECKLIST_SIZE), 2)


def minimum_fields(min_ratio: float) -> int:
    """Smallest number of checklist hits that clears ``min_ratio``."""
    return math.ceil(min_ratio * CHECKLIST_SIZE - 1e-9)


class ConfidenceScorer:
    def __init__(self, min_ratio: float = settings.MIN_CHECKLIST_RATIO):
        self.min_ratio = min_ratio

    def score(self, metrics: ExtractedMetrics) -> Score:
        found = count_found(metrics)
        return Score(
            found=found,
            confidence=confidence_score(found),
            accepted=found >= minimum_fields(self.min_ratio),
        )
