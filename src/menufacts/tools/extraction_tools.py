"""
Extraction oracle adapter.

Sends one document unit (single-page PDF, text chunk, or whole PDF) to a chat model
and turns its free-form reply into ExtractedItems. A bad reply is a unit-local
failure and is returned, never raised; the orchestrator decides what it costs the job.
Items are not checked here, that is validation_service's job.
"""
import base64
import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ValidationError

from menufacts.config import settings
from menufacts.errors import OracleUnavailableError
from menufacts.extraction_prompt import CHUNK_EXTRACTION_PROMPT, PAGE_EXTRACTION_PROMPT
from menufacts.states.state import DocumentUnit, ExtractedItem

logger = logging.getLogger(__name__)

_ARRAY_START_RE = re.compile(r"\[")


# ── Oracle ────────────────────────────────────────────────────────────────────

class ExtractionOracle(Protocol):
    def extract(self, unit: DocumentUnit, prompt: str) -> str:
        """Return the model's raw reply for this unit. May raise on any transport/model error."""
        ...


class ChatModelOracle:
    """Adapts any LangChain chat model to the ExtractionOracle protocol."""

    def __init__(self, llm):
        self._llm = llm

    def extract(self, unit: DocumentUnit, prompt: str) -> str:
        if unit.kind == "pdf":
            content = [
                {
                    "type": "file",
                    "source_type": "base64",
                    "mime_type": "application/pdf",
                    "data": base64.b64encode(unit.data).decode("ascii"),
                },
                {"type": "text", "text": prompt},
            ]
        else:
            # Chunk text is already embedded in the prompt
            content = prompt
        response = self._llm.invoke([HumanMessage(content=content)])
        return _response_text(response.content)


def _response_text(content) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def build_chat_model():
    provider = settings.llm_provider.lower()
    if provider == "google":
        if not settings.google_api_key:
            raise OracleUnavailableError("GOOGLE_API_KEY is not configured")
        return ChatGoogleGenerativeAI(
            model=settings.extraction_model,
            temperature=0.0,
            max_output_tokens=settings.extraction_max_tokens,
            google_api_key=settings.google_api_key,
        )
    if provider == "openai":
        if not settings.openai_api_key:
            raise OracleUnavailableError("OPENAI_API_KEY is not configured")
        return ChatOpenAI(
            model=settings.extraction_model,
            temperature=0.0,
            max_tokens=settings.extraction_max_tokens,
            api_key=settings.openai_api_key,
        )
    raise OracleUnavailableError(f"Unknown LLM provider '{settings.llm_provider}'. Valid: ['google', 'openai']")


def build_default_oracle() -> ExtractionOracle:
    return ChatModelOracle(build_chat_model())


# ── Response parsing ─────────────────────────────────────────────────────────

class ParseStatus(str, enum.Enum):
    OK = "ok"
    EMPTY = "empty"      # the model says there is nothing on this unit
    ERROR = "error"      # the model's output is unusable


class ParsedResponse(BaseModel):
    status: ParseStatus
    items: list[ExtractedItem] = []
    error: str | None = None


# Trace amounts as printed on nutrition labels, e.g. "<1", "< 0.5g"
_TRACE_AMOUNT_RE = re.compile(r"^\s*<\s*\d+(?:\.\d+)?\s*[a-z]*\s*$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_TEXT_FIELDS = ("name", "category", "serving_size", "confidence", "notes")

# Oracle keys (camelCase aliases) and field names both map to the field name
_KEY_TO_FIELD = {
    key: name
    for name, info in ExtractedItem.model_fields.items()
    for key in (name, info.alias)
    if key
}


def _salvage_value(field_name: str, value):
    if field_name in _TEXT_FIELDS:
        if isinstance(value, (int, float)):
            return str(value)
        return None
    if not isinstance(value, str):
        return None
    if _TRACE_AMOUNT_RE.match(value):
        return 0
    match = _NUMBER_RE.search(value.replace(",", ""))
    if not match:
        return None
    number = float(match.group())
    return round(number) if field_name == "calories" else number


def coerce_item(raw: dict) -> ExtractedItem:
    """
    Read one array element as an ExtractedItem without rejecting it.

    A value that does not fit its field is salvaged where it can be ("<1"
    becomes 0, "12g" becomes 12) and nulled otherwise. Either way the item is
    marked low confidence with a note, so the reviewer sees what was changed.
    """
    try:
        return ExtractedItem.model_validate(raw)
    except ValidationError as e:
        bad_fields = {_KEY_TO_FIELD.get(err["loc"][0]) for err in e.errors() if err["loc"]}
        bad_keys = sorted(key for key in raw if _KEY_TO_FIELD.get(key) in bad_fields)

    data = dict(raw)
    repairs = []
    for key in bad_keys:
        original = data[key]
        data[key] = _salvage_value(_KEY_TO_FIELD.get(key, key), original)
        repairs.append(f"{key}={original!r} read as {'null' if data[key] is None else data[key]}")

    note = "Unreadable values: " + "; ".join(repairs)
    existing = data.get("notes")
    data["notes"] = f"{existing}; {note}" if isinstance(existing, str) and existing.strip() else note
    data["confidence"] = "low"
    logger.warning("Coerced extracted item %r: %s", data.get("name"), note)
    return ExtractedItem.model_validate(data)


def parse_items_from_response(text: str) -> ParsedResponse:
    """
    Find the first JSON array of objects in arbitrary model output
    (prose, code fences and all) and read it as ExtractedItems.
    Only a missing or undecodable array is an error; odd values inside
    an element are coerced, never fatal for the unit.
    """
    decoder = json.JSONDecoder()
    for match in _ARRAY_START_RE.finditer(text or ""):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            continue
        if not value:
            return ParsedResponse(status=ParseStatus.EMPTY)
        return ParsedResponse(status=ParseStatus.OK, items=[coerce_item(v) for v in value])

    return ParsedResponse(status=ParseStatus.ERROR, error="Response did not contain a JSON array of items")


# ── Per-unit extraction ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExtractionHint:
    """Read-only snapshot of what earlier units found, taken when a unit is dispatched."""
    categories: tuple[str, ...] = ()
    items_so_far: int = 0


@dataclass
class UnitExtraction:
    unit_number: int
    items: list[ExtractedItem] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def build_prompt(unit: DocumentUnit, restaurant_name: str, hint: ExtractionHint, total_units: int = 1) -> str:
    existing_categories = ", ".join(hint.categories) if hint.categories else "None yet"
    if unit.kind == "text":
        return CHUNK_EXTRACTION_PROMPT.format(
            chunk_number=unit.number,
            restaurant_name=restaurant_name,
            existing_categories=existing_categories,
            items_so_far=hint.items_so_far,
            text=unit.data,
        )
    scope = "the full document" if total_units == 1 else f"page {unit.number}"
    return PAGE_EXTRACTION_PROMPT.format(
        scope=scope,
        restaurant_name=restaurant_name,
        existing_categories=existing_categories,
        items_so_far=hint.items_so_far,
    )


def extract_unit(
    oracle: ExtractionOracle,
    unit: DocumentUnit,
    restaurant_name: str,
    hint: ExtractionHint | None = None,
    total_units: int = 1,
) -> UnitExtraction:
    """
    Extract one unit. Oracle errors and unparseable replies come back as
    UnitExtraction.error. OracleUnavailableError propagates: the mechanism
    itself is unusable, so every other unit would fail the same way.
    """
    prompt = build_prompt(unit, restaurant_name, hint or ExtractionHint(), total_units)
    try:
        raw = oracle.extract(unit, prompt)
    except OracleUnavailableError:
        raise
    except Exception as e:
        logger.error("Extraction call failed for unit %d: %s", unit.number, e)
        return UnitExtraction(unit_number=unit.number, error=str(e) or type(e).__name__)

    parsed = parse_items_from_response(raw)
    if parsed.status is ParseStatus.ERROR:
        logger.warning("Unparseable extraction output for unit %d: %s", unit.number, parsed.error)
        return UnitExtraction(unit_number=unit.number, error=parsed.error)
    if parsed.status is ParseStatus.EMPTY:
        logger.debug("Unit %d has no menu items", unit.number)

    logger.info("Unit %d: extracted %d items", unit.number, len(parsed.items))
    return UnitExtraction(unit_number=unit.number, items=parsed.items)
