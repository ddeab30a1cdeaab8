"""Regex extraction of project economics from technical report text.

Every metric has an ordered tuple of alternatives. Alternatives are tried in
order and, within one alternative, matches in document order; the first match
whose converted value passes the range check wins. Out-of-range values are
treated as non-matches, never clamped.
"""

import logging
import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

from minefilings.extraction.models import ExtractedMetrics
from minefilings.extraction.normalize import (
    COMMODITY_WORDS,
    Commodity,
    ProjectStage,
)
from minefilings.extraction.scoring import count_found
from minefilings.extraction.units import (
    SHORT_TON_TONNES,
    TONNES_PER_POUND,
    UnknownUnitError,
    canonical_grade_unit,
    mass_to_tonnes,
    parse_number,
    usd_to_millions,
)

logger = logging.getLogger(__name__)

# Exclusive upper bounds; every stored value must also be > 0
CEILINGS: dict[str, float] = {
    "capex_usd_m": 100_000,
    "sustaining_capex_usd_m": 100_000,
    "post_tax_npv_usd_m": 100_000,
    "pre_tax_npv_usd_m": 100_000,
    "irr_percent": 100,
    "payback_years": 50,
    "mine_life_years": 100,
    "annual_production_tonnes": 1e9,
    "total_resource_tonnes": 1e11,
    "reserve_tonnes": 1e11,
    "opex_usd_per_tonne": 10_000,
    "aisc_usd_per_tonne": 100_000,
    "recovery_rate_percent": 100,
}

GRADE_CEILINGS: dict[str, float] = {
    "%": 100,
    "g/t": 1_000,
    "oz/t": 30,
    "ppm": 1_000_000,
}


def in_range(field: str, value: float | None, unit: str | None = None) -> bool:
    """True when ``value`` is positive and strictly below the field's ceiling."""
    if value is None or value <= 0:
        return False
    if field == "resource_grade":
        if unit not in GRADE_CEILINGS:
            return False
        return value < GRADE_CEILINGS[unit]
    return value < CEILINGS[field]


# Building blocks
NUM = r"(?P<value>\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
MONEY = (
    r"(?:US|CA|AU|C|A)?\$\s?" + NUM + r"\s*(?P<scale>billion|bn|million|mm|m|b)\b"
)
MONEY_GAP = r"[^$\d.]{0,40}?"
TEXT_GAP = r"[^\d.]{0,40}?"
POST_TAX = r"(?:post|after)[\s-]?tax"
PRE_TAX = r"(?:pre|before)[\s-]?tax"
# Unqualified NPV / IRR must not sit right after a pre-tax qualifier
NOT_PRE_TAXED = (
    r"(?<!pre-tax )(?<!pre tax )(?<!pretax )"
    r"(?<!before-tax )(?<!before tax )(?<!beforetax )\b"
)
NPV = r"(?:net\s+present\s+value|NPV)"
# "NPV8", "NPV (8%)", "NPV at 8%", "NPV8%"
DISCOUNT = r"(?:\d{1,2}(?:\.\d+)?%?|\s*\(?\s*(?:at\s+)?\d{1,2}(?:\.\d+)?\s*%\s*\)?)?"
IRR = r"(?:internal\s+rate\s+of\s+return(?:\s*\(IRR\))?|IRR)"
YEARS = r"\s*(?:-\s*)?(?:years?|yrs?)\b"
SCALE_WORD = r"(?:(?P<scale>thousand|million|billion)\s+)?"
MASS_UNIT = (
    r"(?P<unit>metric\s+tonnes|metric\s+tons|short\s+tons|troy\s+ounces|tonnes|tonne"
    r"|tons|ton|pounds|pound|ounces|ounce|Mlbs|Mlb|klbs|klb|lbs|lb|Moz|koz|ozs|oz"
    r"|Mt|kt|t)\b"
)
GRADE_UNIT = (
    r"(?P<unit>%|percent|g/t|gpt|grams?\s+per\s+tonne|oz/t|opt|ppm)"
)
SYMBOL = r"(?-i:Li2O|Li|Cu|Au|Ag|Ni|Co|Zn|Pb|U3O8|TREO|REO|Cg|C)\b"
PER_UNIT = r"\s*(?:/|per\s+)(?P<unit>tonne|ton|t|pound|lb)\b"
COST_MONEY = r"(?:US|CA|AU|C|A)?\$\s?" + NUM + PER_UNIT

FLAGS = re.IGNORECASE


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, FLAGS) for p in patterns)


def _money(match: re.Match[str]) -> float:
    return round(usd_to_millions(parse_number(match["value"]), match["scale"]), 6)


def _plain(match: re.Match[str]) -> float:
    return parse_number(match["value"])


def _mass(match: re.Match[str]) -> float:
    return round(
        mass_to_tonnes(parse_number(match["value"]), match["unit"], match["scale"]), 6
    )


def _cost_per_tonne(match: re.Match[str]) -> float:
    value = parse_number(match["value"])
    unit = match["unit"].lower()
    if unit in {"pound", "lb"}:
        return round(value / TONNES_PER_POUND, 2)
    if unit == "ton":
        return round(value / SHORT_TON_TONNES, 2)
    return value


@dataclass(frozen=True)
class MetricRule:
    field: str
    patterns: tuple[re.Pattern[str], ...]
    convert: Callable[[re.Match[str]], float]


RULES: tuple[MetricRule, ...] = (
    MetricRule(
        "post_tax_npv_usd_m",
        _compile(
            POST_TAX + r"\s+" + NPV + DISCOUNT + MONEY_GAP + MONEY,
            NPV + DISCOUNT + r"[^$\d.]{0,20}?" + POST_TAX + MONEY_GAP + MONEY,
            MONEY + r"[^$\d.]{0,20}?" + POST_TAX + r"\s+" + NPV,
            NOT_PRE_TAXED
            + NPV
            + DISCOUNT
            + r"(?![^$\d.]{0,20}?"
            + PRE_TAX
            + r")"
            + MONEY_GAP
            + MONEY
            + r"(?!\s*\(?\s*"
            + PRE_TAX
            + r")",
        ),
        _money,
    ),
    MetricRule(
        "pre_tax_npv_usd_m",
        _compile(
            PRE_TAX + r"\s+" + NPV + DISCOUNT + MONEY_GAP + MONEY,
            NPV + DISCOUNT + r"[^$\d.]{0,20}?" + PRE_TAX + MONEY_GAP + MONEY,
            MONEY + r"[^$\d.]{0,20}?" + PRE_TAX + r"\s+" + NPV,
            NPV + DISCOUNT + MONEY_GAP + MONEY + r"\s*\(?\s*" + PRE_TAX,
        ),
        _money,
    ),
    MetricRule(
        "irr_percent",
        _compile(
            POST_TAX + r"\s+" + IRR + r"[^%\d.]{0,30}?" + NUM + r"\s*%",
            IRR + r"[^%\d.]{0,20}?" + NUM + r"\s*%\s*\(?\s*" + POST_TAX,
            NOT_PRE_TAXED
            + IRR
            + r"(?![^%\d.]{0,20}?"
            + PRE_TAX
            + r")"
            + r"[^%\d.]{0,30}?"
            + NUM
            + r"\s*%(?!\s*\(?\s*"
            + PRE_TAX
            + r")",
        ),
        _plain,
    ),
    MetricRule(
        "sustaining_capex_usd_m",
        _compile(
            r"sustaining\s+(?:capital(?:\s+(?:costs?|expenditures?))?|capex)"
            + MONEY_GAP
            + MONEY,
            MONEY + r"\s+(?:in\s+|of\s+)?sustaining\s+(?:capital|capex)",
        ),
        _money,
    ),
    MetricRule(
        "capex_usd_m",
        _compile(
            r"(?<!sustaining )\b(?:initial\s+|pre[\s-]?production\s+|upfront\s+)?"
            r"(?:capital\s+(?:costs?|expenditures?|requirements?)|capex)"
            + MONEY_GAP
            + MONEY,
            MONEY
            + r"\s+(?:in\s+|of\s+)?(?:initial\s+|pre[\s-]?production\s+|upfront\s+)?"
            r"(?:capital\s+(?:costs?|expenditures?)|capex)",
        ),
        _money,
    ),
    MetricRule(
        "payback_years",
        _compile(
            r"\bpayback(?:\s+period)?" + TEXT_GAP + NUM + YEARS,
        ),
        _plain,
    ),
    MetricRule(
        "mine_life_years",
        _compile(
            r"(?:\b(?:mine|project|operating)\s+life|life[\s-]+of[\s-]+mine|\bLOM\b)"
            + TEXT_GAP
            + NUM
            + YEARS,
            NUM + r"[\s-]*years?\s+(?:mine|project|operating)\s+life",
        ),
        _plain,
    ),
    MetricRule(
        "annual_production_tonnes",
        _compile(
            r"(?:average\s+)?(?:annual|yearly)\s+production(?:\s+rate)?"
            + TEXT_GAP
            + NUM
            + r"\s*"
            + SCALE_WORD
            + MASS_UNIT,
            r"production\s+of\s+" + NUM + r"\s*" + SCALE_WORD + MASS_UNIT
            + r"[^.\d]{0,40}?(?:per\s+(?:year|annum)|annually|a\s+year)",
            NUM + r"\s*" + SCALE_WORD + MASS_UNIT + r"\s+(?:per\s+(?:year|annum)|annually)",
        ),
        _mass,
    ),
    MetricRule(
        "total_resource_tonnes",
        _compile(
            r"\b(?:(?:total|measured(?:\s+and|\s*&)\s+indicated|M&I)\s+)?"
            r"(?:mineral\s+)?resources?(?:\s+estimate)?"
            + r"[^\d.]{0,60}?"
            + NUM
            + r"\s*"
            + SCALE_WORD
            + MASS_UNIT,
        ),
        _mass,
    ),
    MetricRule(
        "reserve_tonnes",
        _compile(
            r"\b(?:(?:proven|proved)(?:\s+and|\s*&)\s+probable\s+|mineral\s+|ore\s+|total\s+)?"
            r"reserves?(?:\s+estimate)?"
            + r"[^\d.]{0,60}?"
            + NUM
            + r"\s*"
            + SCALE_WORD
            + MASS_UNIT,
        ),
        _mass,
    ),
    MetricRule(
        "opex_usd_per_tonne",
        _compile(
            r"(?:operating\s+costs?|opex|(?:C1\s+)?cash\s+costs?)" + MONEY_GAP + COST_MONEY,
        ),
        _cost_per_tonne,
    ),
    MetricRule(
        "aisc_usd_per_tonne",
        _compile(
            r"(?:all[\s-]in\s+sustaining\s+costs?|AISC)" + MONEY_GAP + COST_MONEY,
        ),
        _cost_per_tonne,
    ),
    MetricRule(
        "recovery_rate_percent",
        _compile(
            r"(?:metallurgical\s+|process\s+|plant\s+|average\s+|overall\s+)?"
            r"recover(?:y|ies)(?:\s+rates?)?[^%\d.]{0,30}?"
            + NUM
            + r"\s*%",
        ),
        _plain,
    ),
)

GRADE_PATTERNS: tuple[re.Pattern[str], ...] = _compile(
    r"\bgrad(?:e|ing)(?:\s+of)?" + r"[^\d.]{0,30}?" + NUM + r"\s*" + GRADE_UNIT,
    NUM + r"\s*" + GRADE_UNIT + r"\s*" + SYMBOL,
)


@dataclass(frozen=True)
class ExtractionResult:
    metrics: ExtractedMetrics
    found: int


class PatternExtractor:
    """Pure function of the input text; holds no state between calls."""

    def extract(self, text: str) -> ExtractionResult:
        values: dict[str, float | str] = {}
        for rule in RULES:
            value = self._first_in_range(rule, text)
            if value is not None:
                values[rule.field] = value

        grade = self._grade(text)
        if grade is not None:
            values["resource_grade"], values["resource_grade_unit"] = grade

        metrics = ExtractedMetrics(**values)
        found = count_found(metrics)
        logger.debug("Pattern extraction found %s fields: %s", found, sorted(values))
        return ExtractionResult(metrics=metrics, found=found)

    def _first_in_range(self, rule: MetricRule, text: str) -> float | None:
        for pattern in rule.patterns:
            for match in pattern.finditer(text):
                try:
                    value = rule.convert(match)
                except (ValueError, UnknownUnitError):
                    continue
                if in_range(rule.field, value):
                    return value
                logger.debug(
                    "Discarding out-of-range %s=%s from %r",
                    rule.field,
                    value,
                    match.group(0),
                )
        return None

    def _grade(self, text: str) -> tuple[float, str] | None:
        for pattern in GRADE_PATTERNS:
            for match in pattern.finditer(text):
                try:
                    value = parse_number(match["value"])
                    unit = canonical_grade_unit(match["unit"])
                except (ValueError, UnknownUnitError):
                    continue
                if in_range("resource_grade", value, unit):
                    return value, unit
        return None


# Descriptive helpers

_NAME_SUFFIXES = r"(?P<suffix>Project|Mine|Property|Deposit)"
_PROJECT_NAME = re.compile(
    r"\b(?P<name>[A-Z][A-Za-z'’\-]+(?:\s+[A-Z][A-Za-z'’\-]+){0,3})\s+" + _NAME_SUFFIXES + r"\b"
)
# A name never spans one of these; the phrase restarts after it
_BREAK_WORDS = {
    "the", "this", "that", "our", "its", "their", "each", "such", "a", "an",
    "in", "of", "for", "at", "and", "on", "to",
}
_LEADING_STOPWORDS = {
    "technical", "report", "summary", "feasibility", "study", "mineral",
    "resource", "reserve", "lithium", "copper", "gold", "silver", "nickel",
    "cobalt", "zinc", "uranium", "graphite",
}
_COMPANY_SUFFIXES = re.compile(
    r"[\s,]+(?:Inc|Incorporated|Corp|Corporation|Ltd|Limited|LLC|L\.L\.C|PLC|Co"
    r"|Company|Holdings|Group|S\.A|N\.V|AG|SE|NL)\.?$",
    re.IGNORECASE,
)


def extract_project_name(text: str) -> str | None:
    """Most frequent capitalised "<Name> Project/Mine/Property/Deposit" phrase."""
    counts: Counter[str] = Counter()
    for match in _PROJECT_NAME.finditer(text):
        words = match["name"].split()
        for i in range(len(words) - 1, -1, -1):
            if words[i].lower() in _BREAK_WORDS:
                words = words[i + 1 :]
                break
        while words and words[0].lower() in _LEADING_STOPWORDS:
            words.pop(0)
        if not words:
            continue
        counts[f"{' '.join(words)} {match['suffix']}"] += 1
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def fallback_project_name(company_name: str) -> str:
    """Derive "<Company> Project" when the document names no project."""
    name = company_name.strip()
    previous = None
    while previous != name:
        previous = name
        name = _COMPANY_SUFFIXES.sub("", name).strip(" ,")
    return f"{name or company_name.strip()} Project"


# "lead" is too common as a verb to count
_DETECTION_WORDS = [(w, c) for w, c in COMMODITY_WORDS if w != "lead"]


def detect_commodity(text: str, window: int = 20_000) -> Commodity:
    """Most frequently mentioned commodity near the top of the document."""
    head = text[:window].lower()
    counts: Counter[Commodity] = Counter()
    for word, commodity in _DETECTION_WORDS:
        hits = len(re.findall(rf"\b{re.escape(word)}\b", head))
        if hits:
            counts[commodity] += hits
    if not counts:
        return Commodity.OTHER
    return counts.most_common(1)[0][0]


_STAGE_PATTERNS: tuple[tuple[re.Pattern[str], ProjectStage], ...] = (
    (
        re.compile(
            r"(?<!pre-)(?<!pre)(?<!pre )\b(?:definitive\s+|bankable\s+)?feasibility\s+study"
            r"|\bDFS\b|\bBFS\b",
            FLAGS,
        ),
        ProjectStage.FEASIBILITY,
    ),
    (
        re.compile(r"\bpre[\s-]?feasibility\s+study|\bPFS\b", FLAGS),
        ProjectStage.PRE_FEASIBILITY,
    ),
    (
        re.compile(r"\bpreliminary\s+economic\s+assessment|\bPEA\b|\bscoping\s+study", FLAGS),
        ProjectStage.PEA,
    ),
    (
        re.compile(r"\bunder\s+construction\b|\bconstruction\s+(?:decision|commenced|began)", FLAGS),
        ProjectStage.CONSTRUCTION,
    ),
    (
        re.compile(r"\bcommercial\s+production\b|\bcurrently\s+(?:producing|in\s+production)", FLAGS),
        ProjectStage.PRODUCTION,
    ),
    (
        re.compile(r"\bexploration\s+(?:stage|property|project)\b", FLAGS),
        ProjectStage.EXPLORATION,
    ),
)


def detect_stage(text: str, window: int = 50_000) -> ProjectStage | None:
    head = text[:window]
    for pattern, stage in _STAGE_PATTERNS:
        if pattern.search(head):
            return stage
    return None


class Location(NamedTuple):
    jurisdiction: str | None
    country: str


_WORD = r"[A-Z][A-Za-z'\-]*"
_PLACE = _WORD + r"(?:\s+(?:(?:de|del|la|of|du)\s+)?" + _WORD + r"){0,3}"
_LOCATED_IN = re.compile(
    r"(?i:located)\s+(?i:in|within)\s+(?:the\s+)?(?:(?:State|Province)\s+of\s+)?"
    r"(?P<places>" + _PLACE + r"(?:,\s+" + _PLACE + r"){0,3})"
)


def extract_location(text: str) -> Location | None:
    """Parse "located in <place>, <jurisdiction>, <country>"; the last part is the country."""
    match = _LOCATED_IN.search(text)
    if not match:
        return None
    parts = [part.strip() for part in match["places"].split(",") if part.strip()]
    if len(parts) < 2:
        return Location(jurisdiction=None, country=parts[0])
    return Location(jurisdiction=parts[-2], country=parts[-1])
