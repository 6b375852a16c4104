"""
DataWell - SQL Safety Validation
================================

Every statement produced by the LLM (or built deterministically) passes
through validate_sql() before it reaches the database.

RULES (checked in order, first failure wins):
1. No mutating keyword anywhere (DROP, DELETE, UPDATE, INSERT, TRUNCATE, ALTER)
2. Statement starts with SELECT
3. No disallowed pseudo-columns, no identifiers outside the users schema
4. No bare `bmi` column lookups - BMI is always a computed expression

WHAT THIS IS NOT:
- NOT a SQL grammar parser (lexical checks over sqlparse tokens)
- NOT SQL repair (we reject, never rewrite)

Rule 1 is a plain substring match, so a value such as 'Walterboro' is
rejected along with ALTER. Rule 3 matches pseudo-columns inside string
literals too. Both are accepted limitations.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Set

import sqlparse
from sqlparse import tokens as T

from database import TABLE_NAME, USER_COLUMNS

logger = logging.getLogger(__name__)


MUTATING_KEYWORDS = ("DROP", "DELETE", "UPDATE", "INSERT", "TRUNCATE", "ALTER")

DISALLOWED_COLUMNS = (
    "first_name", "last_name", "name", "email", "phone", "address",
    "salary", "income", "esalary",
)

KNOWN_COLUMNS = frozenset(USER_COLUMNS)
KNOWN_TABLES = frozenset({TABLE_NAME})

AVAILABLE_COLUMNS_TEXT = (
    "age, gender, height, weight, city, country, zip, occupation, education, "
    "smoking, drinks_per_week"
)

BMI_FORMULA_HINT = "ROUND(weight / ((height/100.0) * (height/100.0)), 1) AS bmi"

# `bmi` not followed by an assignment or a call
BARE_BMI_PATTERN = re.compile(r"\bbmi\b(?!\s*[=(])", re.IGNORECASE)
BMI_ALIAS_PATTERN = re.compile(r"\bas\s+bmi\b", re.IGNORECASE)

_DISALLOWED_PATTERN = re.compile(
    r"\b(" + "|".join(DISALLOWED_COLUMNS) + r")\b",
    re.IGNORECASE,
)

_TABLE_KEYWORDS = {"FROM", "JOIN", "INNER JOIN", "LEFT JOIN", "RIGHT JOIN", "FULL JOIN", "CROSS JOIN"}

TRY_ASKING = [
    "How many users are there?",
    "What's the average age?",
    "Show me users from California",
    "How many people smoke?",
]


@dataclass
class ValidationResult:
    """
    Outcome of validating one statement.

    Attributes:
        valid: Whether the statement may be executed
        error: Short description of the failure
        reason: Why it is not allowed
        suggestion: How to phrase the request instead
        sql: The statement that was checked
    """
    valid: bool
    sql: str
    error: Optional[str] = None
    reason: Optional[str] = None
    suggestion: Optional[str] = None

    def explain(self) -> str:
        """User-facing rejection text."""
        if self.valid:
            return ""
        examples = "\n".join(f'• "{q}"' for q in TRY_ASKING)
        return (
            f"🔍 **What went wrong:** {self.error}\n\n"
            f"💡 **Why:** {self.reason}\n\n"
            f"🔧 **How to fix:** {self.suggestion}\n\n"
            f"🚀 **Try asking:**\n{examples}\n\n"
            f"📊 **Related insights:** I can help you explore your data safely and effectively!"
        )


def _dangerous_operation(sql: str) -> ValidationResult:
    return ValidationResult(
        valid=False,
        sql=sql,
        error="Dangerous operation detected",
        reason="I can only help with SELECT queries for data exploration",
        suggestion="Ask me to show or analyze data instead of modifying it",
    )


def _code_tokens(sql: str) -> list:
    """Flattened sqlparse tokens without whitespace or comments."""
    tokens = []
    for statement in sqlparse.parse(sql):
        for token in statement.flatten():
            if token.is_whitespace or token.ttype in T.Comment:
                continue
            tokens.append(token)
    return tokens


def _is_keyword(token, *values: str) -> bool:
    return token is not None and token.ttype in T.Keyword and token.normalized.upper() in values


def _is_punct(token, value: str) -> bool:
    return token is not None and token.ttype in T.Punctuation and token.value == value


class SQLValidator:
    """
    Lexical validator for statements against the users table.

    IMPORTANT:
    - Identifiers are sqlparse Name tokens
    - Function calls (name followed by '(') are not columns
    - Names declared with AS are aliases and may be referenced later
    """

    def validate(self, sql: str) -> ValidationResult:
        query = (sql or "").strip()
        lowered = query.lower()

        # Rule 1: mutating keywords (substring match)
        upper = query.upper()
        for keyword in MUTATING_KEYWORDS:
            if keyword in upper:
                logger.warning(f"Validation rejected mutating keyword: {keyword}")
                return _dangerous_operation(query)

        # Rule 2: structure
        if not lowered.startswith("select"):
            return ValidationResult(
                valid=False,
                sql=query,
                error="Invalid SQL structure",
                reason="Query must start with SELECT",
                suggestion="Ask me to show or analyze data using proper SELECT statements",
            )

        # Rule 3a: disallowed pseudo-columns
        disallowed = sorted({m.group(1).lower() for m in _DISALLOWED_PATTERN.finditer(query)})
        if disallowed:
            return ValidationResult(
                valid=False,
                sql=query,
                error=f"Invalid column(s): {', '.join(disallowed)}",
                reason="These columns don't exist in the database",
                suggestion=f"Use available columns: {AVAILABLE_COLUMNS_TEXT}",
            )

        # Rule 3b: identifiers outside the schema
        tokens = _code_tokens(query)
        aliases = self._declared_aliases(tokens)
        unknown = self._unknown_identifiers(tokens, aliases)
        if unknown:
            return ValidationResult(
                valid=False,
                sql=query,
                error=f"Unknown column(s): {', '.join(unknown)}",
                reason="These columns don't exist in the users table",
                suggestion=f"Use only the available columns: {AVAILABLE_COLUMNS_TEXT}",
            )

        # Rule 4: bare bmi lookups
        bare_refs = self.bare_bmi_references(query)
        if bare_refs and "bmi" not in aliases:
            return ValidationResult(
                valid=False,
                sql=query,
                error=f"Invalid column reference: {', '.join(bare_refs)}",
                reason="BMI is not a stored column - it must be calculated",
                suggestion=f"For BMI calculations, use: {BMI_FORMULA_HINT}",
            )

        return ValidationResult(valid=True, sql=query)

    @staticmethod
    def bare_bmi_references(sql: str) -> List[str]:
        """`bmi` tokens that are neither an AS declaration nor a call/assignment."""
        without_aliases = BMI_ALIAS_PATTERN.sub(" ", sql)
        return [m.group(0) for m in BARE_BMI_PATTERN.finditer(without_aliases)]

    @staticmethod
    def _declared_aliases(tokens: list) -> Set[str]:
        aliases = set()
        for i, token in enumerate(tokens):
            if token.ttype is not T.Name or i == 0:
                continue
            prev = tokens[i - 1]
            if _is_keyword(prev, "AS"):
                aliases.add(token.value.lower())
            elif prev.value.lower() in KNOWN_TABLES:
                aliases.add(token.value.lower())  # FROM users u
        return aliases

    @staticmethod
    def _unknown_identifiers(tokens: list, aliases: Set[str]) -> List[str]:
        unknown: List[str] = []
        for i, token in enumerate(tokens):
            if token.ttype is not T.Name:
                continue

            name = token.value.lower()
            prev = tokens[i - 1] if i > 0 else None
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None

            if _is_punct(nxt, "(") or _is_punct(nxt, "."):
                continue  # function call or table qualifier
            if name == "bmi" or name in aliases:
                continue  # rule 4 / computed alias
            if _is_keyword(prev, *_TABLE_KEYWORDS):
                if name not in KNOWN_TABLES and name not in unknown:
                    unknown.append(name)
                continue
            if name not in KNOWN_COLUMNS and name not in KNOWN_TABLES and name not in unknown:
                unknown.append(name)
        return unknown


_validator = SQLValidator()


def validate_sql(sql: str) -> ValidationResult:
    """Validate one statement with the shared validator."""
    result = _validator.validate(sql)
    if not result.valid:
        logger.info(f"SQL rejected: {result.error} | {result.sql[:120]}")
    return result
