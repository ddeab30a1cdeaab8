import logging

import httpx
import ollama
import requests
from pydantic import ValidationError

from minefilings.config import settings
from minefilings.extraction.models import (
    METRIC_FIELDS,
    AiExtraction,
    ExtractedMetrics,
    ProjectFacts,
)
from minefilings.extraction.patterns import in_range
from minefilings.extraction.units import UnknownUnitError, canonical_grade_unit
from minefilings.ingestion.models import Category, StageResult
from minefilings.llm.llm_engine import LlmEngineABC
from minefilings.llm.prompt import SYSTEM_MESSAGE, build_extraction_prompt

logger = logging.getLogger(__name__)

_DESCRIPTIVE_FIELDS = tuple(ProjectFacts.model_fields)


class AiExtractor:
    def __init__(
        self,
        engine: LlmEngineABC,
        excerpt_chars: int = settings.AI_EXCERPT_CHARS,
        temperature: float = settings.LLM_TEMPERATURE,
        max_tokens: int = settings.LLM_MAX_TOKENS,
    ):
        self.engine = engine
        self.excerpt_chars = excerpt_chars
        self.temperature = temperature
        self.max_tokens = max_tokens

    def extract(self, text: str, company_name: str) -> StageResult[AiExtraction]:
        """Ask the model for the structured record; any failure is a skip, never fatal."""
        excerpt = text[: self.excerpt_chars]
        prompt = build_extraction_prompt(excerpt, company_name)
        try:
            raw = self.engine.complete_json(
                SYSTEM_MESSAGE,
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except (
            requests.RequestException,
            httpx.HTTPError,
            ollama.ResponseError,
            ConnectionError,  # ollama SDK when the server is unreachable
        ) as e:
            logger.warning("Language model call failed for %s: %s", company_name, e)
            return StageResult.skip(Category.AI_PARSE, f"model call failed: {e}")
        except (KeyError, IndexError, TypeError) as e:
            logger.warning("Unexpected model response shape for %s: %s", company_name, e)
            return StageResult.skip(Category.AI_PARSE, f"unexpected response: {e}")

        try:
            extraction = AiExtraction.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Could not parse model output for %s: %s", company_name, e.errors()[:3]
            )
            return StageResult.skip(Category.AI_PARSE, "model output is not valid JSON")
        return StageResult.ok(extraction)


def merge_extractions(
    metrics: ExtractedMetrics,
    facts: ProjectFacts,
    ai: AiExtraction | None,
) -> tuple[ExtractedMetrics, ProjectFacts]:
    """Combine pattern and model output.

    Numbers: the pattern value wins; a model value fills a gap only when it
    passes the same range check. Descriptive fields: the model value wins
    when present.
    """
    if ai is None:
        return metrics, facts

    merged: dict[str, float | str | None] = metrics.model_dump()
    for name in METRIC_FIELDS:
        if name == "resource_grade" or merged[name] is not None:
            continue
        candidate = getattr(ai, name)
        if in_range(name, candidate):
            merged[name] = candidate

    if merged["resource_grade"] is None and ai.resource_grade is not None:
        unit = _grade_unit(ai.resource_grade_unit)
        if unit and in_range("resource_grade", ai.resource_grade, unit):
            merged["resource_grade"] = ai.resource_grade
            merged["resource_grade_unit"] = unit

    descriptive = facts.model_dump()
    for name in _DESCRIPTIVE_FIELDS:
        value = getattr(ai, name)
        if isinstance(value, str) and value.strip():
            descriptive[name] = value.strip()

    return ExtractedMetrics(**merged), ProjectFacts(**descriptive)


def _grade_unit(unit: str | None) -> str | None:
    if not unit:
        return None
    try:
        return canonical_grade_unit(unit)
    except UnknownUnitError:
        return None
