from typing import TypedDict, Optional, Literal, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


# ── Extracted menu items ─────────────────────────────────────────────────────

# Placeholders nutrition tables use for "not stated"
_MISSING_MARKERS = {"", "n/a", "na", "-", "—", "–", "null", "none"}

NUTRITION_FIELDS = (
    "total_fat_g",
    "saturated_fat_g",
    "trans_fat_g",
    "cholesterol_mg",
    "sodium_mg",
    "total_carbs_g",
    "dietary_fiber_g",
    "sugars_g",
    "protein_g",
)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in _MISSING_MARKERS:
        return None
    return value


class ExtractedItem(BaseModel):
    """
    One candidate menu item produced by extraction.
    Every field is nullable: missing data is reported by validation, never guessed here.
    Accepts the oracle's camelCase keys (servingSize, totalFatG, ...) as well as field names.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    category: Optional[str] = None
    serving_size: Optional[str] = Field(None, alias="servingSize")
    calories: Optional[int] = None
    total_fat_g: Optional[float] = Field(None, alias="totalFatG")
    saturated_fat_g: Optional[float] = Field(None, alias="saturatedFatG")
    trans_fat_g: Optional[float] = Field(None, alias="transFatG")
    cholesterol_mg: Optional[float] = Field(None, alias="cholesterolMg")
    sodium_mg: Optional[float] = Field(None, alias="sodiumMg")
    total_carbs_g: Optional[float] = Field(None, alias="totalCarbsG")
    dietary_fiber_g: Optional[float] = Field(None, alias="dietaryFiberG")
    sugars_g: Optional[float] = Field(None, alias="sugarsG")
    protein_g: Optional[float] = Field(None, alias="proteinG")
    confidence: Optional[str] = Field(None, description="high | medium | low")
    notes: Optional[str] = None

    @field_validator("calories", mode="before")
    @classmethod
    def _round_calories(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator(*NUTRITION_FIELDS, "serving_size", "category", "notes", mode="before")
    @classmethod
    def _missing_markers(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalise_confidence(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


class ExtractedItemUpdate(ExtractedItem):
    """Partial edit sent by a reviewer. Only fields present in the request body are merged."""


# ── Validation report ────────────────────────────────────────────────────────

class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {CheckStatus.PASS: 0, CheckStatus.WARNING: 1, CheckStatus.ERROR: 2}


class ValidationCheck(BaseModel):
    name: str
    status: CheckStatus
    message: str


class ValidationResult(BaseModel):
    item_index: int
    item_name: Optional[str]
    status: CheckStatus
    checks: list[ValidationCheck]


# ── Splitting / extraction ───────────────────────────────────────────────────

class DocumentUnit(BaseModel):
    """A self-contained piece of the source document that can be extracted on its own."""
    number: int = Field(..., description="1-based position in the document; the page number for page units")
    kind: Literal["pdf", "text"]
    data: bytes | str


class PipelineProgress(BaseModel):
    total_units: int = 0
    completed_units: int = 0
    current_unit: int = 0
    status: Literal["splitting", "processing", "merging", "validating", "complete"]


# ── LangGraph State definitions ───────────────────────────────────────────────

class IngestionState(TypedDict):
    """State for the PDF ingestion pipeline."""
    job_id: str
    restaurant_name: str
    pdf_path: str
    units: list[DocumentUnit]
    items: list[ExtractedItem]
    failed_units: list[int]
    validation_report: list[ValidationResult]
