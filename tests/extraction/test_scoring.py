from __future__ import annotations

import pytest

from minefilings.extraction.models import ExtractedMetrics
from minefilings.extraction.scoring import (
    CHECKLIST_SIZE,
    ConfidenceScorer,
    confidence_score,
    count_found,
    minimum_fields,
)


def _metrics(n: int) -> ExtractedMetrics:
    values = {
        "capex_usd_m": 1070.0,
        "post_tax_npv_usd_m": 2300.0,
        "irr_percent": 25.1,
        "mine_life_years": 40.0,
        "annual_production_tonnes": 80_000.0,
        "payback_years": 3.2,
    }
    return ExtractedMetrics(**dict(list(values.items())[:n]))


def test_checklist_has_fourteen_fields() -> None:
    assert CHECKLIST_SIZE == 14
    assert minimum_fields(0.30) == 5


def test_five_fields_are_accepted() -> None:
    score = ConfidenceScorer(0.30).score(_metrics(5))
    assert score.found == 5
    assert score.accepted


def test_four_fields_are_rejected() -> None:
    score = ConfidenceScorer(0.30).score(_metrics(4))
    assert score.found == 4
    assert not score.accepted
    assert score.confidence == pytest.approx(2.86)


def test_grade_without_unit_is_not_counted() -> None:
    assert count_found(ExtractedMetrics(resource_grade=0.23)) == 0
    assert count_found(ExtractedMetrics(resource_grade=0.23, resource_grade_unit="%")) == 1


def test_confidence_is_capped_at_ten() -> None:
    assert confidence_score(6) == pytest.approx(4.29)
    assert confidence_score(14) == 10.0
    assert confidence_score(0) == 0.0
