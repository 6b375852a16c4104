"""
DataWell BMI Helpers
====================

BMI is never stored in the users table. It is derived on demand from
height (cm) and weight (kg), both in Python (for formatting) and in SQL
(for generated queries). The SQL snippets below are the single source of
truth for the SQL derivation.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

# SQL derivation of BMI, shared by prompts and deterministic queries
BMI_SQL_EXPRESSION = "weight / ((height/100.0) * (height/100.0))"
BMI_SELECT_SQL = f"ROUND({BMI_SQL_EXPRESSION}, 1) AS bmi"
BMI_CATEGORY_SQL = f"""CASE
  WHEN {BMI_SQL_EXPRESSION} < 18.5 THEN 'Underweight'
  WHEN {BMI_SQL_EXPRESSION} < 25 THEN 'Normal weight'
  WHEN {BMI_SQL_EXPRESSION} < 30 THEN 'Overweight'
  ELSE 'Obese' END AS bmi_category"""

UNDERWEIGHT_LIMIT = 18.5
NORMAL_LIMIT = 25.0
OVERWEIGHT_LIMIT = 30.0


def to_number(value: Any) -> Optional[float]:
    """Coerce ints, floats, Decimals and numeric strings; None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None


def compute_bmi(height: Any, weight: Any) -> float:
    """
    Compute BMI from height in centimetres and weight in kilograms.

    Returns 0 when either value is missing or not positive.
    """
    height_cm = to_number(height)
    weight_kg = to_number(weight)
    if not height_cm or not weight_kg or height_cm <= 0 or weight_kg <= 0:
        return 0.0

    height_m = height_cm / 100
    return weight_kg / (height_m * height_m)


def categorize_bmi(bmi: Any) -> str:
    value = to_number(bmi)
    if not value or value <= 0:
        return "N/A"
    if value < UNDERWEIGHT_LIMIT:
        return "Underweight"
    if value < NORMAL_LIMIT:
        return "Normal weight"
    if value < OVERWEIGHT_LIMIT:
        return "Overweight"
    return "Obese"


def has_invalid_measurement(row: Dict[str, Any]) -> bool:
    """True when a recorded height or weight is zero or negative."""
    for key in ("height", "weight"):
        value = to_number(row.get(key))
        if value is not None and value <= 0:
            return True
    return False


def row_bmi(row: Dict[str, Any]) -> float:
    """
    BMI for a result row: precomputed `bmi` column first, then height/weight.

    A row with a non-positive recorded height or weight has no BMI, even
    when the statement computed one.
    """
    if has_invalid_measurement(row):
        return 0.0
    precomputed = row.get("bmi")
    if precomputed:
        return to_number(precomputed) or 0.0
    return compute_bmi(row.get("height"), row.get("weight"))


@dataclass
class BMIStats:
    """
    Aggregate BMI figures over a row set.

    Attributes:
        valid_count: Rows with a positive BMI
        average_bmi: Mean BMI over valid rows (0 when none)
        categories: Category -> count, in first-seen order
    """
    valid_count: int = 0
    average_bmi: float = 0.0
    categories: Dict[str, int] = field(default_factory=dict)

    def category_summary(self) -> str:
        return ", ".join(f"{name}: {count}" for name, count in self.categories.items())


def aggregate_bmi(rows: Iterable[Dict[str, Any]]) -> BMIStats:
    """Compute BMI per row, ignore rows without a valid BMI, average the rest."""
    values = []
    categories: Dict[str, int] = {}

    for row in rows:
        bmi = row_bmi(row)
        if bmi > 0:
            values.append(bmi)
            category = categorize_bmi(bmi)
            categories[category] = categories.get(category, 0) + 1

    average = sum(values) / len(values) if values else 0.0
    return BMIStats(valid_count=len(values), average_bmi=average, categories=categories)
