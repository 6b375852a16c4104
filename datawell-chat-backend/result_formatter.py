"""
Result formatting for DataWell chat responses.

Turns executed rows into the plain text shown in the chat widget:
single-row aggregates become one sentence, small result sets become a
numbered list with quick stats. Deterministic, no I/O.
"""

from typing import Any, Dict, List, Optional, Sequence

from bmi import aggregate_bmi, categorize_bmi, compute_bmi, has_invalid_measurement, to_number

MAX_LISTED_ROWS = 10


def _or_na(value: Any) -> Any:
    return value if value else "N/A"


def _aggregate_line(row: Dict[str, Any]) -> Optional[str]:
    """Sentence for single-value aggregate rows (checked in fixed key order)."""
    if "count" in row:
        return f"Found {row['count']} records matching your criteria."
    if "avg" in row:
        value = to_number(row["avg"])
        return f"Average: {value:.2f}" if value is not None else "Average: N/A"
    if "average_bmi" in row:
        value = to_number(row["average_bmi"])
        return f"Average BMI: {value:.1f}" if value is not None else "Average BMI: N/A"
    if "sum" in row:
        return f"Total: {row['sum']}"
    if "max" in row:
        return f"Maximum: {row['max']}"
    if "min" in row:
        return f"Minimum: {row['min']}"
    return None


def _bmi_line(row: Dict[str, Any]) -> Optional[str]:
    if has_invalid_measurement(row):
        return None
    bmi = compute_bmi(row.get("height"), row.get("weight"))
    if bmi > 0:
        return f"   BMI: {bmi:.1f} ({categorize_bmi(bmi)})"
    if row.get("bmi"):
        return f"   BMI: {row['bmi']} ({categorize_bmi(row['bmi'])})"
    return None


def _format_record(number: int, row: Dict[str, Any]) -> List[str]:
    lines = [
        f"{number}. {_or_na(row.get('gender'))}, {_or_na(row.get('age'))} years old",
        f"   Location: {_or_na(row.get('city'))}, {_or_na(row.get('country'))}",
        f"   Job: {_or_na(row.get('occupation'))} | Education: {_or_na(row.get('education'))}",
        f"   Height: {_or_na(row.get('height'))}cm, Weight: {_or_na(row.get('weight'))}kg",
    ]
    bmi_line = _bmi_line(row)
    if bmi_line:
        lines.append(bmi_line)
    lines.append(
        f"   Smoking: {_or_na(row.get('smoking'))} | Drinks/week: {_or_na(row.get('drinks_per_week'))}"
    )
    return lines


def _quick_stats(rows: Sequence[Dict[str, Any]]) -> List[str]:
    total = len(rows)
    avg_age = sum(to_number(row.get("age")) or 0 for row in rows) / total
    males = sum(1 for row in rows if row.get("gender") == "Male")
    females = sum(1 for row in rows if row.get("gender") == "Female")
    smokers = sum(1 for row in rows if row.get("smoking") == "Yes")

    lines = [
        "Quick Stats:",
        f"• Average Age: {avg_age:.1f}",
        f"• Male: {males}, Female: {females}",
        f"• Smokers: {smokers}/{total} ({smokers / total * 100:.0f}%)",
    ]

    stats = aggregate_bmi(rows)
    if stats.valid_count > 0:
        lines.append(f"• Average BMI: {stats.average_bmi:.1f}")
        lines.append(f"• BMI Categories: {stats.category_summary()}")
    return lines


def format_query_result(rows: Sequence[Dict[str, Any]], start_index: int = 1) -> str:
    """
    Render executed rows as chat text.

    Args:
        rows: Result rows as dicts
        start_index: Number of the first listed record (pagination)

    Returns:
        Formatted text; the same input always yields the same output
    """
    if not rows:
        return "No data found."

    aggregate = _aggregate_line(rows[0]) if len(rows) == 1 else None
    if aggregate is not None:
        return aggregate

    if len(rows) > MAX_LISTED_ROWS:
        return (
            f"Found {len(rows)} records. Here are the first {MAX_LISTED_ROWS}:\n\n"
            + format_query_result(rows[:MAX_LISTED_ROWS], start_index)
        )

    lines = [f"Found {len(rows)} records:", ""]
    for offset, row in enumerate(rows):
        lines.extend(_format_record(start_index + offset, row))
        lines.append("")
    lines.extend(_quick_stats(rows))
    return "\n".join(lines) + "\n"


def format_pagination_footer(start: int, end: int, total: int) -> str:
    return (
        f"\n\n📊 **Showing users {start}-{end} of {total} users with BMI data**\n\n"
        f"💡 **Want to see more?** Try asking:\n"
        f"• \"Show me users with BMI from {end + 1}-{end + 10}\"\n"
        f"• \"Show me all users with BMI\" (for complete list)\n"
        f"• \"What's the average BMI?\" (for summary)"
    )


def format_bmi_listing_footer(shown: int, total: int) -> str:
    """Footer for the first BMI page; empty when everything fit."""
    if total <= shown:
        return ""
    return (
        f"\n\n📊 **Showing {shown} of {total} users with BMI data**\n\n"
        f"💡 **Want to see more?** Try asking:\n"
        f"• \"Show me more users with BMI\"\n"
        f"• \"Show me users with BMI from {shown + 1}-{shown + 10}\"\n"
        f"• \"Show me all users with BMI\" (for complete list)\n"
        f"• \"What's the average BMI?\" (for summary)"
    )
