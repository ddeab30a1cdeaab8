import pytest

from minefilings.extraction.normalize import Commodity, ProjectStage
from minefilings.extraction.patterns import (
    PatternExtractor,
    detect_commodity,
    detect_stage,
    extract_location,
    extract_project_name,
    fallback_project_name,
    in_range,
)


@pytest.fixture
def extractor() -> PatternExtractor:
    return PatternExtractor()


def test_extracts_report_fixture(extractor, report_text):
    result = extractor.extract(report_text)
    m = result.metrics

    assert m.post_tax_npv_usd_m == 2300
    assert m.irr_percent == 25.1
    assert m.capex_usd_m == 1070
    assert m.mine_life_years == 40
    assert m.annual_production_tonnes == 80_000
    assert m.resource_grade == 0.23
    assert m.resource_grade_unit == "%"
    assert m.pre_tax_npv_usd_m is None
    assert m.total_resource_tonnes is None
    assert result.found == 6


def test_irr_above_ceiling_is_discarded(extractor):
    result = extractor.extract("The project shows an IRR of 150% on the base case.")
    assert result.metrics.irr_percent is None
    assert result.found == 0


def test_out_of_range_match_falls_through_to_next(extractor):
    text = "IRR of 150% in the upside case and an IRR of 31.2% in the base case."
    assert extractor.extract(text).metrics.irr_percent == 31.2


def test_billions_are_converted_to_millions(extractor):
    text = "The post-tax NPV8 of US$1.2 billion reflects a long mine life."
    assert extractor.extract(text).metrics.post_tax_npv_usd_m == pytest.approx(1200)


def test_post_and_pre_tax_npv_are_kept_apart(extractor):
    text = (
        "The pre-tax NPV8 of $3,100 million and post-tax NPV8 of $2,300 million "
        "were calculated at long-term prices."
    )
    m = extractor.extract(text).metrics
    assert m.post_tax_npv_usd_m == 2300
    assert m.pre_tax_npv_usd_m == 3100


def test_pre_tax_npv_is_not_reported_as_post_tax(extractor):
    m = extractor.extract("A pre-tax NPV of $3,100 million was estimated.").metrics
    assert m.pre_tax_npv_usd_m == 3100
    assert m.post_tax_npv_usd_m is None


@pytest.mark.parametrize(
    ("text", "pre_tax"),
    [
        ("The NPV (pre-tax) of $500 million.", 500),
        ("The before tax NPV of $500 million.", 500),
        ("An NPV of $500 million (pre-tax) was estimated.", 500),
    ],
)
def test_pre_tax_wordings_never_fill_post_tax_npv(extractor, text, pre_tax):
    m = extractor.extract(text).metrics
    assert m.post_tax_npv_usd_m is None
    assert m.pre_tax_npv_usd_m == pre_tax


@pytest.mark.parametrize(
    "text",
    [
        "An IRR (pre-tax) of 30% was estimated.",
        "The before tax IRR of 30% was estimated.",
        "The IRR of 30% before tax was estimated.",
    ],
)
def test_pre_tax_irr_is_not_reported(extractor, text):
    assert extractor.extract(text).metrics.irr_percent is None


def test_npv_with_discount_rate_in_parentheses(extractor):
    m = extractor.extract("After-tax NPV (8%) of $950 million.").metrics
    assert m.post_tax_npv_usd_m == 950


def test_sustaining_capital_is_not_initial_capex(extractor):
    text = "Sustaining capital of $310 million and initial capital costs of $1,070 million."
    m = extractor.extract(text).metrics
    assert m.sustaining_capex_usd_m == 310
    assert m.capex_usd_m == 1070


def test_production_in_ounces_and_pounds(extractor):
    gold = extractor.extract("Average annual production of 250,000 ounces of gold.")
    assert gold.metrics.annual_production_tonnes == pytest.approx(7.775869)

    copper = extractor.extract("Annual production of 45 million pounds of copper.")
    assert copper.metrics.annual_production_tonnes == pytest.approx(20_411.65665)


def test_mine_life_phrasings(extractor):
    assert extractor.extract("a life of mine of 18 years").metrics.mine_life_years == 18
    assert extractor.extract("supports a 25-year mine life").metrics.mine_life_years == 25


def test_payback_recovery_and_unit_costs(extractor):
    text = (
        "Payback period of 3.2 years. Metallurgical recovery of 85% is assumed. "
        "Operating costs of $4,500/t LCE and AISC of $1.50/lb copper."
    )
    m = extractor.extract(text).metrics
    assert m.payback_years == 3.2
    assert m.recovery_rate_percent == 85
    assert m.opex_usd_per_tonne == 4500
    assert m.aisc_usd_per_tonne == pytest.approx(3306.93)


def test_resource_and_reserve_tonnage(extractor):
    text = (
        "Measured and Indicated resources of 120 million tonnes at 0.45% Cu. "
        "Proven and probable reserves of 85 Mt at 0.5% Cu."
    )
    m = extractor.extract(text).metrics
    assert m.total_resource_tonnes == 120_000_000
    assert m.reserve_tonnes == 85_000_000


def test_grade_keeps_its_unit(extractor):
    m = extractor.extract("The gold grade of 1.8 g/t Au is above cut-off.").metrics
    assert m.resource_grade == 1.8
    assert m.resource_grade_unit == "g/t"


def test_grade_above_unit_ceiling_is_discarded(extractor):
    m = extractor.extract("Bonanza grade of 35 oz/t was intersected.").metrics
    assert m.resource_grade is None
    assert m.resource_grade_unit is None


def test_in_range_bounds():
    assert in_range("irr_percent", 99.9)
    assert not in_range("irr_percent", 100)
    assert not in_range("capex_usd_m", 0)
    assert not in_range("capex_usd_m", -5)
    assert in_range("resource_grade", 999, "g/t")
    assert not in_range("resource_grade", 1.0, "furlongs")


def test_descriptive_helpers(report_text):
    assert extract_project_name(report_text) == "Thacker Basin Project"
    assert detect_commodity(report_text) is Commodity.LITHIUM
    assert detect_stage(report_text) is ProjectStage.FEASIBILITY

    location = extract_location(report_text)
    assert location is not None
    assert location.jurisdiction == "Nevada"
    assert location.country == "USA"


def test_pre_feasibility_is_not_feasibility():
    text = "Results of the Pre-Feasibility Study are summarised below."
    assert detect_stage(text) is ProjectStage.PRE_FEASIBILITY
    assert detect_stage("No study has been completed.") is None


def test_fallback_project_name_strips_company_suffix():
    assert fallback_project_name("Piedmont Lithium Inc.") == "Piedmont Lithium Project"
    assert fallback_project_name("Ur-Energy Corp") == "Ur-Energy Project"
    assert fallback_project_name("Sigma Lithium Holdings Ltd.") == "Sigma Lithium Project"
    assert extract_project_name("no capitalised names here") is None
