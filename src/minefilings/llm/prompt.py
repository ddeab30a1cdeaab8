from minefilings.extraction.models import METRIC_FIELDS

SYSTEM_MESSAGE = (
    "You are a mining analyst extracting facts from technical reports "
    "(S-K 1300 technical report summaries, NI 43-101 reports, feasibility studies). "
    "Answer with a single JSON object and nothing else. Use null for any value the "
    "text does not state; never guess or compute values that are not written.\n"
    "Units: money in millions of US dollars, mass in metric tonnes, rates in percent, "
    "durations in years, unit costs in US dollars per tonne. "
    'resource_grade_unit is one of "%", "g/t", "oz/t", "ppm".\n'
    'stage is one of "Exploration", "PEA", "Pre-Feasibility", "Feasibility", '
    '"Permitting", "Construction", "Production".'
)

_DESCRIPTIVE_KEYS = (
    "project_name",
    "country",
    "jurisdiction",
    "primary_commodity",
    "stage",
    "project_description",
)


def response_schema() -> dict[str, None]:
    keys = [*_DESCRIPTIVE_KEYS, *METRIC_FIELDS, "resource_grade_unit"]
    return {key: None for key in keys}


def build_extraction_prompt(excerpt: str, company_name: str) -> str:
    """User message for one filing excerpt."""
    schema_lines = ",\n".join(f'  "{key}": null' for key in response_schema())
    return (
        f"Company: {company_name}\n\n"
        "Fill in this JSON object from the document excerpt below:\n"
        f"{{\n{schema_lines}\n}}\n\n"
        f"Document excerpt:\n{excerpt}\n\n"
        "JSON:"
    )
