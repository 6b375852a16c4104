"""
DataWell - Natural Language to SQL
==================================

Builds the prompts that turn a user question into one SELECT statement
over the users table, plus the deterministic statements used for BMI
listings and pagination.

Output from the model is UNTRUSTED. generate() only cleans formatting
(markdown fences, "SQL:" prefixes, trailing statements); the caller must
run every statement through sql_validator before execution.
"""

import logging
import re
from typing import Dict, Optional, Sequence

import sqlparse

from bmi import BMI_CATEGORY_SQL, BMI_SELECT_SQL, BMI_SQL_EXPRESSION
from context_resolver import ContextResolution
from llm_client import CompletionClient, format_history

logger = logging.getLogger(__name__)


# =============================================================================
# DETERMINISTIC STATEMENTS
# =============================================================================

# NULL fails the comparison too; zero heights never reach the division
BMI_ROWS_FILTER = "height > 0 AND weight > 0"

AVERAGE_BMI_SQL = (
    f"SELECT AVG(ROUND({BMI_SQL_EXPRESSION}, 1)) AS average_bmi "
    f"FROM users WHERE {BMI_ROWS_FILTER}"
)

BMI_COUNT_SQL = f"SELECT COUNT(*) AS total FROM users WHERE {BMI_ROWS_FILTER}"


def bmi_listing_sql(limit: int = 10, offset: int = 0) -> str:
    """Users with a computable BMI, ordered by id, one page at a time."""
    sql = f"SELECT *, {BMI_SELECT_SQL} FROM users WHERE {BMI_ROWS_FILTER} ORDER BY id LIMIT {int(limit)}"
    if offset:
        sql += f" OFFSET {int(offset)}"
    return sql


# =============================================================================
# MESSAGE PATTERNS
# =============================================================================

BMI_PATTERN = re.compile(
    r"(bmi|body mass index|weight.*height|height.*weight|overweight|underweight|obese|"
    r"normal weight|calculate.*bmi|bmi.*calculate)",
    re.IGNORECASE,
)

BMI_LISTING_PATTERN = re.compile(r"(can you calculate|calculate|show.*bmi|bmi.*show)", re.IGNORECASE)

AGGREGATION_PATTERN = re.compile(
    r"(average|avg|count|sum|max|min|total)\s+(bmi|age|height|weight|users|people)",
    re.IGNORECASE,
)

REFUSAL_TEXT = "i can only help"

_FENCE_PATTERN = re.compile(r"```(?:sql)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_PREFIX_PATTERN = re.compile(r"^\s*(?:sql\s*query|sql|query)\s*:\s*", re.IGNORECASE)


def is_bmi_query(message: str) -> bool:
    return bool(BMI_PATTERN.search(message))


def wants_bmi_listing(message: str) -> bool:
    """"Can you calculate BMI?" / "show me BMI" style requests."""
    return is_bmi_query(message) and bool(BMI_LISTING_PATTERN.search(message))


def apply_overrides(message: str, sql: Optional[str]) -> Optional[str]:
    """Replace model output with a fixed statement where the phrasing is unambiguous."""
    lowered = message.lower()
    if AGGREGATION_PATTERN.search(message) and ("average bmi" in lowered or "avg bmi" in lowered):
        logger.info("Average BMI request - using fixed aggregation")
        return AVERAGE_BMI_SQL
    return sql


def looks_like_sql(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return REFUSAL_TEXT not in lowered and "select" in lowered


def clean_sql(raw: Optional[str]) -> str:
    """
    Strip formatting the model tends to wrap around a statement.

    "```sql\\nSELECT 1;\\n```" -> "SELECT 1"
    "SQL: SELECT 1; SELECT 2" -> "SELECT 1"
    """
    text = (raw or "").strip()
    if not text:
        return ""

    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()

    text = _PREFIX_PATTERN.sub("", text)

    statements = [s for s in sqlparse.split(text) if s.strip()]
    if statements:
        text = statements[0]
    return text.strip().rstrip(";").strip()


# =============================================================================
# PROMPTS
# =============================================================================

COLUMNS_TEXT = "id, age, gender, height, weight, city, country, zip, occupation, education, smoking, drinks_per_week"

COLUMN_MAPPINGS = """IMPORTANT COLUMN MAPPINGS:
- smoking: 'Yes' or 'No' (string values)
- country: 'USA', 'US', 'Usa' (various formats)
- gender: 'Male', 'Female', 'Other'
- drinks_per_week: integer"""

CALIFORNIA_FILTER = (
    "country IN ('USA', 'US', 'Usa') AND "
    "(city ILIKE '%california%' OR city ILIKE '%ca%' OR city ILIKE '%cali%')"
)

CALIFORNIA_RULE = f"For California, check: {CALIFORNIA_FILTER}"

CALIFORNIA_QUERY = f"SELECT * FROM users WHERE {CALIFORNIA_FILTER}"

NOT_BMI_INSTRUCTION = (
    "\n\nCRITICAL INSTRUCTION: This query is NOT about BMI. Do NOT include any BMI calculations, "
    "BMI categories, or health metrics. Only use the basic columns: " + COLUMNS_TEXT + "."
)

SQL_PROMPT_TEMPLATE = """You are an expert SQL assistant with conversation context. Convert this user request into a valid SQL query based on the following TABLE users ({columns}).

{mappings}

BMI CALCULATION SUPPORT:
- BMI is NOT a stored column - it must be calculated using: {bmi_select}
- For BMI categories, use: {bmi_category}
- BMI queries should include both height and weight in the SELECT clause
- NEVER reference 'bmi' as a column - always calculate it

ERROR PREVENTION RULES:
- NEVER use columns that don't exist (first_name, last_name, name, email, phone, etc.)
- ALWAYS use exact column names from the schema
- ALWAYS use single quotes for string values
- ALWAYS use ILIKE for case-insensitive text searches
- ALWAYS handle NULL values properly
{context}
User Request: "{message}"

CONTEXT AWARENESS:
- If user says "Show them", "Show me those", "Display them", etc., refer to the previous query results
- If user says "What about [something]", modify the previous query with new criteria
- If user says "Filter by [something]", add a WHERE clause to the previous query
- If user says "How many of them [condition]", apply the condition to the previous result set
- If user asks follow-up questions, build upon the previous query context

CONVERSATION CONTEXT EXAMPLES:
- Previous: "How many users in database?" -> Current: "How many of them under age 25?" -> SELECT COUNT(*) FROM users WHERE age < 25
- Previous: "Show me users from California" -> Current: "What about smokers?" -> {california_query} AND smoking = 'Yes' LIMIT 10
- Previous: "Show all users" -> Current: "Show me the youngest ones" -> SELECT * FROM users ORDER BY age ASC LIMIT 10

STRICT RULES:
1. Only use SELECT statements
2. Use EXACT column names: {columns}
3. For smoking queries, use: smoking = 'Yes' or smoking = 'No'
4. For location queries, check both 'country' and 'city' columns
5. {california}
6. For averages, use AVG() function; for counts, use COUNT() function
7. For aggregation queries (average, count, sum, max, min), return ONLY the aggregated result, not individual records
8. For "average BMI" queries, use: {average_bmi}
9. If the request is unclear, respond with "I can only help with data questions. Please ask me something about the users in the database."
10. Return ONLY the SQL query, no explanations

QUERY TYPE DETECTION:
- If user asks "What's the average [something]" -> Use AVG() function
- If user asks "How many [something]" -> Use COUNT() function
- If user asks "Show me [something]" -> Use SELECT * to show records
- If user asks "Show users from [location]" -> Use SELECT * with WHERE clause
- If user asks "Show all users" -> Use SELECT * LIMIT 10
- If user asks "Show users with [condition]" -> Use SELECT * with WHERE clause

EXAMPLES:
- "What's the average weight of men?" -> SELECT AVG(weight) AS avg FROM users WHERE gender = 'Male'
- "How many users are there?" -> SELECT COUNT(*) FROM users
- "how many records in database" -> SELECT COUNT(*) FROM users
- "Show me users from California" -> {california_query} LIMIT 10
- "Show all users" -> SELECT * FROM users LIMIT 10
- "show all users age 25" -> SELECT * FROM users WHERE age = 25 LIMIT 10
- "Show users who smoke" -> SELECT * FROM users WHERE smoking = 'Yes' LIMIT 10{not_bmi}

SQL Query:"""

FOLLOW_UP_PROMPT_TEMPLATE = """You are a SQL assistant. The user previously asked: "{anchor}" and got a result. Now they're asking a follow-up question: "{message}"

Convert this into a SQL query based on the following TABLE users ({columns}).

CONTEXT UNDERSTANDING:
- If the follow-up asks "How many of them [condition]", apply the condition to the previous query context
- If the follow-up asks "What about [something]", add that condition to the previous query
- If the follow-up asks "Show me the [something]", modify the previous query accordingly
- Build upon the previous query context, don't start from scratch

{mappings}

BMI CALCULATION SUPPORT:
- For BMI queries, use: {bmi_select}
- For BMI categories, use: {bmi_category}

Previous query context: "{anchor}"
Current request: "{message}"

Rules:
1. Use SELECT * to show all fields, or include specific fields with BMI if relevant
2. Use single quotes for string values
3. For smoking queries, use: smoking = 'Yes' or smoking = 'No'
4. {california}
5. Return ONLY the SQL query, no explanations

SQL Query:"""


def build_sql_prompt(message: str, history: Sequence[Dict[str, str]] = ()) -> str:
    context = ""
    if history:
        context = f"\nCONVERSATION CONTEXT:\n{format_history(history)}\n"
    return SQL_PROMPT_TEMPLATE.format(
        columns=COLUMNS_TEXT,
        mappings=COLUMN_MAPPINGS,
        bmi_select=BMI_SELECT_SQL,
        bmi_category=BMI_CATEGORY_SQL,
        context=context,
        message=message,
        california=CALIFORNIA_RULE,
        california_query=CALIFORNIA_QUERY,
        average_bmi=AVERAGE_BMI_SQL,
        not_bmi="" if is_bmi_query(message) else NOT_BMI_INSTRUCTION,
    )


def build_follow_up_prompt(resolution: ContextResolution) -> str:
    return FOLLOW_UP_PROMPT_TEMPLATE.format(
        anchor=resolution.anchor,
        message=resolution.message,
        columns=COLUMNS_TEXT,
        mappings=COLUMN_MAPPINGS,
        bmi_select=BMI_SELECT_SQL,
        bmi_category=BMI_CATEGORY_SQL,
        california=CALIFORNIA_RULE,
    )


class SQLGenerator:
    """
    Asks the completion service for SQL.

    Raises CompletionError from the client unchanged so the caller can map
    the HTTP status to a user message.
    """

    def __init__(self, client: CompletionClient):
        self.client = client

    async def generate(self, message: str, history: Sequence[Dict[str, str]] = ()) -> str:
        fixed = apply_overrides(message, None)
        if fixed is not None:
            return fixed

        messages = [
            {"role": turn.get("role", "user"), "content": turn.get("content", "")}
            for turn in history
        ]
        messages.append({"role": "user", "content": build_sql_prompt(message, history)})

        raw = await self.client.complete(messages, max_tokens=200, temperature=0.1)
        sql = clean_sql(raw)
        logger.info(f"Generated SQL: {sql}")
        return sql

    async def generate_follow_up(self, resolution: ContextResolution) -> str:
        raw = await self.client.complete_prompt(
            build_follow_up_prompt(resolution), max_tokens=200, temperature=0.1
        )
        sql = clean_sql(raw)
        logger.info(f"Generated follow-up SQL: {sql}")
        return sql


def create_sql_generator(client: CompletionClient) -> SQLGenerator:
    return SQLGenerator(client)
