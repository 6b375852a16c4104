"""
ChatPipeline - Orchestration Controller

Runs one chat message through:
- Intent classification (early exits for non-data intents)
- Name / salary deflection
- Follow-up resolution (pagination, references to earlier questions)
- BMI listing shortcut
- SQL generation, validation, execution and formatting

Strictly sequential. Every statement, deterministic or generated, goes
through validate_sql() before it reaches the database.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Sequence

from context_resolver import (
    NAME_PATTERN,
    RANGE_PATTERN,
    SALARY_PATTERN,
    ContextResolution,
    ContextResolver,
    create_context_resolver,
)
from database import DatabaseManager, QueryExecutionError
from error_explainer import ErrorExplainer
from intent_classifier import Intent, IntentClassifier, create_intent_classifier
from llm_client import CompletionClient, CompletionError
from result_formatter import format_bmi_listing_footer, format_pagination_footer, format_query_result
from sql_generator import SQLGenerator, bmi_listing_sql, create_sql_generator, looks_like_sql, wants_bmi_listing
from sql_validator import validate_sql

logger = logging.getLogger(__name__)


# =============================================================================
# FIXED RESPONSES
# =============================================================================

INTENT_RESPONSES = {
    Intent.GREETING: (
        "Hello! I'm your DataWell assistant. I can help you explore your data by answering questions like:\n\n"
        "• \"How many users are there?\"\n"
        "• \"What's the average age?\"\n"
        "• \"Show me users from California\"\n"
        "• \"How many people smoke?\"\n"
        "• \"What's the average weight of men?\"\n"
        "• \"Calculate BMI for all users\"\n"
        "• \"Show me users with normal BMI\"\n"
        "• \"What's the average BMI?\"\n\n"
        "What would you like to know about your data?"
    ),
    Intent.NON_DATA: (
        "I understand! I'm here to help you explore your DataWell data whenever you're ready. "
        "Feel free to ask me any questions about the users in your database!"
    ),
    Intent.APPRECIATION: (
        "Thank you! I'm glad I could help. Feel free to ask me anything else about your data - "
        "I'm here to help you explore and understand your DataWell database!"
    ),
    Intent.DANGEROUS: (
        "I can only help you explore and analyze data - I cannot modify or delete anything. I can help you with:\n\n"
        "• **Count data:** \"How many users are there?\"\n"
        "• **Show data:** \"Show me users from California\"\n"
        "• **Analyze data:** \"What's the average age?\"\n"
        "• **Filter data:** \"Show me male users who smoke\"\n"
        "• **Calculate metrics:** \"What's the average BMI?\"\n\n"
        "What would you like to explore about your data?"
    ),
    Intent.UNCLEAR: (
        "I'm not sure what you're looking for. I can help you explore your data by asking questions like:\n\n"
        "• \"How many users are there?\"\n"
        "• \"What's the average age?\"\n"
        "• \"Show me users from California\"\n"
        "• \"How many people smoke?\"\n"
        "• \"What's the average BMI?\"\n\n"
        "What would you like to know about your data?"
    ),
}

AVAILABLE_FIELDS = (
    "The available user information includes:\n\n"
    "• Age, Gender, Height, Weight\n"
    "• Location (City, Country, Zip)\n"
    "• Occupation, Education\n"
    "• Smoking status, Drinks per week\n\n"
)

NAME_UNAVAILABLE = (
    "I don't have first name or last name data in this database. " + AVAILABLE_FIELDS +
    "Try asking about these fields instead, like:\n"
    "• \"Show me all users by occupation\"\n"
    "• \"What's the average age?\"\n"
    "• \"How many people are from California?\""
)

SALARY_UNAVAILABLE = (
    "I don't have salary or income data in this database. " + AVAILABLE_FIELDS +
    "Try asking about these fields instead, like:\n"
    "• \"What occupations do we have?\"\n"
    "• \"What's the average age?\"\n"
    "• \"How many people are from California?\"\n"
    "• \"What's the education distribution?\""
)

NOT_A_DATA_QUESTION = (
    "I can only help with data questions. Please ask me something about the users in the database, "
    "like \"How many users are there?\" or \"What's the average age?\""
)

NO_DATA_FOUND = (
    "No data found matching your criteria. Try asking something like:\n\n"
    "• \"How many users are there?\"\n"
    "• \"Show me all users\"\n"
    "• \"What's the average age?\""
)

NO_MORE_USERS = "No more users found. You've seen all users with BMI data!"

NO_BMI_DATA = "No users found with valid height and weight data for BMI calculation."

BMI_HELP = (
    "I can calculate BMI! BMI is calculated using height and weight. Try asking:\n\n"
    "• \"Show me users with BMI\"\n"
    "• \"What's the average BMI?\"\n"
    "• \"Calculate BMI for all users\"\n"
    "• \"Show me users with normal BMI\""
)

HIGH_DEMAND = "I'm experiencing high demand right now. Please try again in a moment."
AI_SERVICE_ISSUE = "There's an issue with my AI service. Please try again later."
AI_SERVICE_ERROR = "Sorry, I encountered an error with the AI service. Please try again."


def no_users_in_range(start: int, end: int) -> str:
    return (
        f"No users found in range {start}-{end}. "
        f"Try asking for a different range or \"Show me all users with BMI\"."
    )


def completion_failure_message(status_code: Optional[int]) -> str:
    """User text for a failed SQL-generation call, keyed on the HTTP status."""
    if status_code == 429:
        return HIGH_DEMAND
    if status_code == 401:
        return AI_SERVICE_ISSUE
    return AI_SERVICE_ERROR


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class PipelineResult:
    """Result from pipeline."""
    response: str
    sql_query: Optional[str] = None
    status_code: int = 200
    intent: Optional[str] = None
    execution_time: float = 0.0


# =============================================================================
# CHAT PIPELINE
# =============================================================================

class ChatPipeline:
    """
    Pure orchestration over the chat components.

    FLOW:
    1. Classify intent; non-data intents get fixed texts
    2. Deflect name / salary questions
    3. Follow-ups (pagination or reference); failures fall through
    4. BMI listing shortcut
    5. Generate -> validate -> execute -> format
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        context_resolver: ContextResolver,
        generator: SQLGenerator,
        db_manager: DatabaseManager,
        explainer: ErrorExplainer,
    ):
        self.classifier = classifier
        self.context_resolver = context_resolver
        self.generator = generator
        self.db = db_manager
        self.explainer = explainer

    async def handle(self, message: str, history: Sequence[Dict[str, str]] = ()) -> PipelineResult:
        start_time = datetime.now()
        history = tuple(history or ())

        result = await self._route(message.strip(), history)

        result.execution_time = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Handled message in {result.execution_time:.2f}s "
            f"(intent={result.intent}, sql={'yes' if result.sql_query else 'no'})"
        )
        return result

    async def _route(self, message: str, history: Sequence[Dict[str, str]]) -> PipelineResult:
        intent = await self.classifier.classify(message, history)
        if intent != Intent.DATA_QUERY:
            return PipelineResult(INTENT_RESPONSES[intent], intent=intent.value)

        if NAME_PATTERN.search(message):
            return PipelineResult(NAME_UNAVAILABLE, intent=intent.value)
        if SALARY_PATTERN.search(message):
            return PipelineResult(SALARY_UNAVAILABLE, intent=intent.value)

        resolution = self.context_resolver.resolve(message, history)
        if resolution is not None:
            if resolution.is_pagination:
                result = self._paginated_listing(resolution)
            else:
                result = await self._follow_up(resolution)
            if result is not None:
                result.intent = intent.value
                return result
            logger.info("Follow-up handling produced nothing, continuing with normal generation")

        if wants_bmi_listing(message):
            result = self._bmi_listing()
            result.intent = intent.value
            return result

        result = await self._generate_and_run(message, history)
        result.intent = intent.value
        return result

    # -------------------------------------------------------------------------
    # Follow-ups
    # -------------------------------------------------------------------------

    def _paginated_listing(self, resolution: ContextResolution) -> Optional[PipelineResult]:
        page = resolution.page
        sql = bmi_listing_sql(page.limit, page.offset)
        if not validate_sql(sql).valid:
            return None

        try:
            rows = self.db.execute(sql)
            if not rows:
                if RANGE_PATTERN.search(resolution.message):
                    return PipelineResult(no_users_in_range(page.start, page.end))
                return PipelineResult(NO_MORE_USERS)
            total = self.db.count_users_with_bmi()
        except QueryExecutionError as e:
            logger.error(f"Pagination query failed: {str(e)}")
            return None

        shown_end = page.start + len(rows) - 1
        response = format_query_result(rows, page.start) + format_pagination_footer(page.start, shown_end, total)
        return PipelineResult(response, sql_query=sql)

    async def _follow_up(self, resolution: ContextResolution) -> Optional[PipelineResult]:
        try:
            sql = await self.generator.generate_follow_up(resolution)
        except CompletionError as e:
            logger.warning(f"Follow-up generation failed: {str(e)}")
            return None

        if not looks_like_sql(sql):
            return None

        validation = validate_sql(sql)
        if not validation.valid:
            logger.info(f"Follow-up SQL rejected: {validation.error}")
            return None

        try:
            rows = self.db.execute(sql)
        except QueryExecutionError as e:
            logger.error(f"Follow-up SQL failed: {str(e)}")
            return None

        if not rows:
            return None
        return PipelineResult(format_query_result(rows), sql_query=sql)

    def _bmi_listing(self) -> PipelineResult:
        sql = bmi_listing_sql(limit=10)
        validation = validate_sql(sql)
        if not validation.valid:
            return PipelineResult(validation.explain())

        try:
            total = self.db.count_users_with_bmi()
            rows = self.db.execute(sql)
        except QueryExecutionError as e:
            logger.error(f"BMI listing failed: {str(e)}")
            return PipelineResult(BMI_HELP)

        if not rows:
            return PipelineResult(NO_BMI_DATA, sql_query=sql)

        response = format_query_result(rows, 1) + format_bmi_listing_footer(len(rows), total)
        return PipelineResult(response, sql_query=sql)

    # -------------------------------------------------------------------------
    # Generated SQL
    # -------------------------------------------------------------------------

    async def _generate_and_run(self, message: str, history: Sequence[Dict[str, str]]) -> PipelineResult:
        try:
            sql = await self.generator.generate(message, history)
        except CompletionError as e:
            logger.error(f"SQL generation failed (status={e.status_code}): {str(e)}")
            return PipelineResult(completion_failure_message(e.status_code))

        if not looks_like_sql(sql):
            return PipelineResult(NOT_A_DATA_QUESTION)

        validation = validate_sql(sql)
        if not validation.valid:
            return PipelineResult(validation.explain())

        try:
            rows = self.db.execute(sql)
        except QueryExecutionError as e:
            explanation = await self.explainer.explain(e, sql, history)
            return PipelineResult(explanation, sql_query=sql)

        if not rows:
            return PipelineResult(NO_DATA_FOUND, sql_query=sql)
        return PipelineResult(format_query_result(rows), sql_query=sql)


def create_chat_pipeline(client: CompletionClient, db_manager: DatabaseManager) -> ChatPipeline:
    """Wire the default components around one completion client and store."""
    return ChatPipeline(
        classifier=create_intent_classifier(client),
        context_resolver=create_context_resolver(),
        generator=create_sql_generator(client),
        db_manager=db_manager,
        explainer=ErrorExplainer(client),
    )
