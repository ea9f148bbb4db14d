"""
Data-quality validation for extracted menu items.

Pure functions, no I/O. Every check runs on every item (no short-circuit) so a
reviewer sees all problems with an item at once; the item's status is the worst
status among its checks.
"""
from collections import Counter
from menufacts.states.state import (
    CheckStatus,
    ExtractedItem,
    ValidationCheck,
    ValidationResult,
)

CALORIE_MIN = 1
CALORIE_MAX = 5000
MACRO_TOLERANCE = 0.20
SODIUM_MAX_MG = 10000

# Fields that must never be negative, in report order
_NON_NEGATIVE_FIELDS = (
    ("calories", "calories"),
    ("totalFatG", "total_fat_g"),
    ("saturatedFatG", "saturated_fat_g"),
    ("transFatG", "trans_fat_g"),
    ("cholesterolMg", "cholesterol_mg"),
    ("sodiumMg", "sodium_mg"),
    ("totalCarbsG", "total_carbs_g"),
    ("dietaryFiberG", "dietary_fiber_g"),
    ("sugarsG", "sugars_g"),
    ("proteinG", "protein_g"),
)


def _check(name: str, status: CheckStatus, message: str) -> ValidationCheck:
    return ValidationCheck(name=name, status=status, message=message)


def check_required_fields(item: ExtractedItem) -> ValidationCheck:
    missing = []
    if not (item.name and item.name.strip()):
        missing.append("name")
    if item.calories is None:
        missing.append("calories")
    if item.protein_g is None:
        missing.append("proteinG")
    if item.total_carbs_g is None:
        missing.append("totalCarbsG")
    if item.total_fat_g is None:
        missing.append("totalFatG")

    if missing:
        return _check("required_fields", CheckStatus.ERROR, f"Missing required fields: {', '.join(missing)}")
    return _check("required_fields", CheckStatus.PASS, "All required fields present")


def check_calorie_range(item: ExtractedItem) -> ValidationCheck:
    if item.calories is None:
        return _check("calorie_range", CheckStatus.ERROR, "Calories is missing")
    if item.calories < CALORIE_MIN or item.calories > CALORIE_MAX:
        return _check(
            "calorie_range",
            CheckStatus.ERROR,
            f"Calories {item.calories} is outside valid range ({CALORIE_MIN}-{CALORIE_MAX})",
        )
    return _check("calorie_range", CheckStatus.PASS, "Calories within valid range")


def check_macro_math(item: ExtractedItem) -> ValidationCheck:
    """protein*4 + carbs*4 + fat*9 must land within 20% of the stated calories."""
    if (
        item.calories is None
        or item.protein_g is None
        or item.total_carbs_g is None
        or item.total_fat_g is None
    ):
        return _check("macro_math", CheckStatus.PASS, "Skipped (missing macro values)")
    if item.calories <= 0:
        return _check("macro_math", CheckStatus.PASS, "Skipped (non-positive calories)")

    calculated = item.protein_g * 4 + item.total_carbs_g * 4 + item.total_fat_g * 9
    deviation = abs(calculated - item.calories) / item.calories

    if deviation > MACRO_TOLERANCE:
        return _check(
            "macro_math",
            CheckStatus.WARNING,
            f"Macro-calculated calories ({round(calculated)}) differs from stated "
            f"({item.calories}) by {round(deviation * 100)}%",
        )
    return _check("macro_math", CheckStatus.PASS, "Macro math within 20% tolerance")


def check_duplicate_name(item: ExtractedItem, duplicate_names: set[str]) -> ValidationCheck:
    if item.name and item.name in duplicate_names:
        return _check("duplicate_name", CheckStatus.WARNING, f'Duplicate item name: "{item.name}"')
    return _check("duplicate_name", CheckStatus.PASS, "No duplicate names")


def check_serving_size_present(item: ExtractedItem) -> ValidationCheck:
    if not item.serving_size or not item.serving_size.strip():
        return _check("serving_size_present", CheckStatus.WARNING, "Serving size is missing")
    return _check("serving_size_present", CheckStatus.PASS, "Serving size present")


def check_category_assigned(item: ExtractedItem) -> ValidationCheck:
    if not item.category or not item.category.strip():
        return _check("category_assigned", CheckStatus.ERROR, "Category is missing")
    return _check("category_assigned", CheckStatus.PASS, "Category assigned")


def check_negative_values(item: ExtractedItem) -> ValidationCheck:
    negative = [
        label for label, attr in _NON_NEGATIVE_FIELDS
        if getattr(item, attr) is not None and getattr(item, attr) < 0
    ]
    if negative:
        return _check("negative_values", CheckStatus.ERROR, f"Negative values found: {', '.join(negative)}")
    return _check("negative_values", CheckStatus.PASS, "No negative values")


def check_sodium_range(item: ExtractedItem) -> ValidationCheck:
    if item.sodium_mg is not None and item.sodium_mg > SODIUM_MAX_MG:
        return _check(
            "sodium_range",
            CheckStatus.WARNING,
            f"Sodium {item.sodium_mg:g}mg exceeds {SODIUM_MAX_MG}mg, likely an extraction error",
        )
    return _check("sodium_range", CheckStatus.PASS, "Sodium within expected range")


def check_confidence(item: ExtractedItem) -> ValidationCheck:
    if item.confidence == "low":
        suffix = f": {item.notes}" if item.notes else ""
        return _check("confidence_check", CheckStatus.WARNING, f"AI confidence is low{suffix}")
    return _check("confidence_check", CheckStatus.PASS, "AI confidence acceptable")


def find_duplicate_names(items: list[ExtractedItem]) -> set[str]:
    """Exact names that occur more than once across the batch. Unnamed and blank-named items are ignored."""
    counts = Counter(item.name for item in items if item.name and item.name.strip())
    return {name for name, count in counts.items() if count > 1}


def _validate_item(item: ExtractedItem, index: int, duplicate_names: set[str]) -> ValidationResult:
    checks = [
        check_required_fields(item),
        check_calorie_range(item),
        check_macro_math(item),
        check_duplicate_name(item, duplicate_names),
        check_serving_size_present(item),
        check_category_assigned(item),
        check_negative_values(item),
        check_sodium_range(item),
        check_confidence(item),
    ]
    overall = max((c.status for c in checks), key=lambda s: s.severity)
    return ValidationResult(item_index=index, item_name=item.name, status=overall, checks=checks)


def run_validation(items: list[ExtractedItem]) -> list[ValidationResult]:
    """Validate a whole batch. result[i] always describes items[i]."""
    duplicate_names = find_duplicate_names(items)
    return [_validate_item(item, index, duplicate_names) for index, item in enumerate(items)]


def validate_single_item(item: ExtractedItem, index: int, all_items: list[ExtractedItem]) -> ValidationResult:
    """Re-validate one item after an edit; duplicate detection still looks at the full list."""
    return _validate_item(item, index, find_duplicate_names(all_items))
