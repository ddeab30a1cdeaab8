"""Closed vocabularies for commodity and project stage.

Registry text is uncontrolled, so lookups never raise: anything unrecognised
degrades to ``Commodity.OTHER`` / ``ProjectStage.EXPLORATION``.
"""

from __future__ import annotations

import re
from enum import Enum


class Commodity(str, Enum):
    LITHIUM = "Lithium"
    COPPER = "Copper"
    GOLD = "Gold"
    SILVER = "Silver"
    NICKEL = "Nickel"
    COBALT = "Cobalt"
    ZINC = "Zinc"
    LEAD = "Lead"
    URANIUM = "Uranium"
    RARE_EARTHS = "Rare Earths"
    GRAPHITE = "Graphite"
    OTHER = "Other"


class ProjectStage(str, Enum):
    EXPLORATION = "Exploration"
    PEA = "PEA"
    PRE_FEASIBILITY = "Pre-Feasibility"
    FEASIBILITY = "Feasibility"
    PERMITTING = "Permitting"
    CONSTRUCTION = "Construction"
    PRODUCTION = "Production"


# Exact (whole-string) aliases, including chemical symbols
_COMMODITY_ALIASES: dict[str, Commodity] = {
    "li": Commodity.LITHIUM,
    "li2o": Commodity.LITHIUM,
    "lce": Commodity.LITHIUM,
    "spodumene": Commodity.LITHIUM,
    "cu": Commodity.COPPER,
    "au": Commodity.GOLD,
    "ag": Commodity.SILVER,
    "ni": Commodity.NICKEL,
    "co": Commodity.COBALT,
    "zn": Commodity.ZINC,
    "pb": Commodity.LEAD,
    "u": Commodity.URANIUM,
    "u3o8": Commodity.URANIUM,
    "ree": Commodity.RARE_EARTHS,
    "reo": Commodity.RARE_EARTHS,
    "treo": Commodity.RARE_EARTHS,
    "c": Commodity.GRAPHITE,
}

# Whole-word names searched inside longer phrases ("lithium carbonate")
COMMODITY_WORDS: list[tuple[str, Commodity]] = [
    ("lithium", Commodity.LITHIUM),
    ("spodumene", Commodity.LITHIUM),
    ("copper", Commodity.COPPER),
    ("gold", Commodity.GOLD),
    ("silver", Commodity.SILVER),
    ("nickel", Commodity.NICKEL),
    ("cobalt", Commodity.COBALT),
    ("zinc", Commodity.ZINC),
    ("lead", Commodity.LEAD),
    ("uranium", Commodity.URANIUM),
    ("rare earths", Commodity.RARE_EARTHS),
    ("rare earth", Commodity.RARE_EARTHS),
    ("rare-earth", Commodity.RARE_EARTHS),
    ("neodymium", Commodity.RARE_EARTHS),
    ("graphite", Commodity.GRAPHITE),
]

_STAGE_ALIASES: dict[str, ProjectStage] = {
    "exploration": ProjectStage.EXPLORATION,
    "grassroots": ProjectStage.EXPLORATION,
    "pea": ProjectStage.PEA,
    "preliminary economic assessment": ProjectStage.PEA,
    "scoping": ProjectStage.PEA,
    "scoping study": ProjectStage.PEA,
    "pfs": ProjectStage.PRE_FEASIBILITY,
    "pre-feasibility": ProjectStage.PRE_FEASIBILITY,
    "prefeasibility": ProjectStage.PRE_FEASIBILITY,
    "pre feasibility": ProjectStage.PRE_FEASIBILITY,
    "pre-feasibility study": ProjectStage.PRE_FEASIBILITY,
    "feasibility": ProjectStage.FEASIBILITY,
    "feasibility study": ProjectStage.FEASIBILITY,
    "dfs": ProjectStage.FEASIBILITY,
    "bfs": ProjectStage.FEASIBILITY,
    "definitive feasibility study": ProjectStage.FEASIBILITY,
    "bankable feasibility study": ProjectStage.FEASIBILITY,
    "permitting": ProjectStage.PERMITTING,
    "permitted": ProjectStage.PERMITTING,
    "construction": ProjectStage.CONSTRUCTION,
    "development": ProjectStage.CONSTRUCTION,
    "under construction": ProjectStage.CONSTRUCTION,
    "production": ProjectStage.PRODUCTION,
    "producing": ProjectStage.PRODUCTION,
    "operating": ProjectStage.PRODUCTION,
    "operation": ProjectStage.PRODUCTION,
    "commercial production": ProjectStage.PRODUCTION,
}

# Checked in order when no exact alias matches
_STAGE_KEYWORDS: list[tuple[re.Pattern[str], ProjectStage]] = [
    (re.compile(r"\bpre[\s-]?feasibility\b|\bpfs\b"), ProjectStage.PRE_FEASIBILITY),
    (re.compile(r"\bfeasibility\b|\bdfs\b|\bbfs\b"), ProjectStage.FEASIBILITY),
    (re.compile(r"\bpreliminary economic\b|\bpea\b|\bscoping\b"), ProjectStage.PEA),
    (re.compile(r"\bpermit"), ProjectStage.PERMITTING),
    (re.compile(r"\bconstruct|\bdevelopment\b"), ProjectStage.CONSTRUCTION),
    (re.compile(r"\bproduc|\boperat|\bcommercial\b"), ProjectStage.PRODUCTION),
]


def _key(text: str) -> str:
    return " ".join(text.lower().replace("_", " ").split())


def normalize_commodity(text: str | None) -> Commodity:
    """Map free text ("Au", "lithium carbonate", "GOLD") to a ``Commodity``."""
    if not text:
        return Commodity.OTHER
    key = _key(text)
    for member in Commodity:
        if key == member.value.lower():
            return member
    if key in _COMMODITY_ALIASES:
        return _COMMODITY_ALIASES[key]
    for word, commodity in COMMODITY_WORDS:
        if re.search(rf"\b{re.escape(word)}\b", key):
            return commodity
    return Commodity.OTHER


def normalize_stage(text: str | None) -> ProjectStage:
    """Map free text ("DFS", "Pre-Feasibility Study", "producing") to a ``ProjectStage``."""
    if not text:
        return ProjectStage.EXPLORATION
    key = _key(text)
    for member in ProjectStage:
        if key == member.value.lower():
            return member
    if key in _STAGE_ALIASES:
        return _STAGE_ALIASES[key]
    for pattern, stage in _STAGE_KEYWORDS:
        if pattern.search(key):
            return stage
    return ProjectStage.EXPLORATION
