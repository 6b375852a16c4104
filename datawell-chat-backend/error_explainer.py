"""
DataWell - Execution Error Explanations
=======================================

When a validated statement still fails in the database, the user gets an
explanation instead of a stack trace. The completion service is asked
first; if it fails or returns nothing, a static template keyed on the
backend message is used.
"""

import logging
import re
from typing import Dict, Optional, Sequence

from llm_client import CompletionClient, CompletionError, format_history

logger = logging.getLogger(__name__)


ERROR_ANALYSIS_PROMPT = """You are an expert SQL error analyzer. Analyze this error and provide helpful guidance.

ERROR DETAILS:
- Error: {error}
- Original Query: {sql}
- Available Schema: {schema}

CONVERSATION CONTEXT:
{history}

ANALYZE AND PROVIDE:
1. What went wrong (in simple terms)
2. Why it happened
3. Specific suggestions to fix it
4. Alternative ways to ask the same question
5. Proactive suggestions for related queries

FORMAT YOUR RESPONSE AS:
🔍 **What went wrong:** [Brief explanation]
💡 **Why:** [Technical reason]
🔧 **How to fix:** [Specific suggestions]
🚀 **Try asking:** [Alternative questions]
📊 **Related insights:** [Proactive suggestions]

Be helpful, educational, and encouraging. Use emojis and make it engaging."""

DEFAULT_SCHEMA = (
    "users (id, age, gender, height, weight, city, country, zip, occupation, "
    "education, smoking, drinks_per_week)"
)

_COLUMN_NAME = re.compile(r'column "([^"]+)"')

MISSING_COLUMN_TEMPLATE = """🔍 **What went wrong:** I couldn't find the column "{column}" in the database.

💡 **Why:** The database doesn't have that field name.

🔧 **How to fix:** Use these available columns instead:
• **Personal:** Age, Gender, Height, Weight
• **Location:** City, Country, Zip
• **Background:** Occupation, Education
• **Lifestyle:** Smoking, Drinks per week

🚀 **Try asking:**
• "Show me users by age"
• "What's the average height?"
• "How many people are from California?"
• "What occupations do we have?"

📊 **Related insights:** I can help you explore demographics, health metrics, and geographic distribution!"""

SYNTAX_ERROR_MESSAGE = """🔍 **What went wrong:** I had trouble understanding your question structure.

💡 **Why:** The AI generated SQL that doesn't match the database format.

🔧 **How to fix:** Try asking more simply:
• "How many users are there?"
• "What's the average age?"
• "Show me users from California"
• "How many people smoke?"

🚀 **Try asking:**
• "Count all users"
• "Average age of users"
• "Users in California"
• "Smoking statistics"

📊 **Related insights:** I can help with counts, averages, filtering, and data exploration!"""

PERMISSION_ERROR_MESSAGE = """🔍 **What went wrong:** I don't have permission to access that data.

💡 **Why:** The query tried to access restricted information.

🔧 **How to fix:** Ask about user information instead:
• "How many users are there?"
• "What's the average age?"
• "Show me user demographics"

🚀 **Try asking:**
• "User statistics"
• "Demographic breakdown"
• "Health metrics"
• "Geographic distribution"

📊 **Related insights:** I can help you explore user data safely and effectively!"""

CONNECTION_ERROR_MESSAGE = """🔍 **What went wrong:** I'm having trouble connecting to the database.

💡 **Why:** Network or database connectivity issue.

🔧 **How to fix:** Please try again in a moment.

🚀 **Try asking:** Once connected, try:
• "How many users are there?"
• "What's the average age?"
• "Show me user data"

📊 **Related insights:** I'll be ready to help explore your data once the connection is restored!"""

GENERIC_ERROR_MESSAGE = """🔍 **What went wrong:** I encountered an unexpected error with your query.

💡 **Why:** Something didn't work as expected in the database query.

🔧 **How to fix:** Try these proven questions:
• "How many users are there?"
• "What's the average age?"
• "Show me users from California"
• "How many people smoke?"
• "What's the average height?"

🚀 **Try asking:**
• "User count"
• "Age statistics"
• "Location data"
• "Health metrics"
• "Demographic breakdown"

📊 **Related insights:** I can help you discover patterns in your user data!"""


def static_error_message(error_text: str) -> str:
    """Template explanation keyed on the backend error message."""
    if "column" in error_text and "does not exist" in error_text:
        match = _COLUMN_NAME.search(error_text)
        return MISSING_COLUMN_TEMPLATE.format(column=match.group(1) if match else "unknown")
    if "syntax error" in error_text or "invalid syntax" in error_text:
        return SYNTAX_ERROR_MESSAGE
    if "permission" in error_text or "access" in error_text:
        return PERMISSION_ERROR_MESSAGE
    if "connection" in error_text or "timeout" in error_text:
        return CONNECTION_ERROR_MESSAGE
    return GENERIC_ERROR_MESSAGE


class ErrorExplainer:
    """LLM-backed explanation with a static fallback; never raises."""

    def __init__(self, client: Optional[CompletionClient], schema: str = DEFAULT_SCHEMA):
        self.client = client
        self.schema = schema

    async def explain(self, error: Exception, original_sql: str, history: Sequence[Dict[str, str]] = ()) -> str:
        error_text = str(error)
        logger.info(f"Explaining execution error: {error_text[:200]}")

        if self.client is not None:
            prompt = ERROR_ANALYSIS_PROMPT.format(
                error=error_text,
                sql=original_sql,
                schema=self.schema,
                history=format_history(history),
            )
            try:
                explanation = await self.client.complete_prompt(prompt, max_tokens=300, temperature=0.3)
                if explanation.strip():
                    return explanation.strip()
            except CompletionError as e:
                logger.warning(f"Error analysis failed: {str(e)}")

        return static_error_message(error_text)
