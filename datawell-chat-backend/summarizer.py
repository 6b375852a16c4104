"""
Narrative summary of the most recent user records.
"""

import json
import logging
from typing import Any, Dict, Sequence

from llm_client import CompletionClient, EmptyCompletionError

logger = logging.getLogger(__name__)

NO_SUMMARY = "No summary available."

SUMMARY_PROMPT_TEMPLATE = """Please provide a comprehensive summary and analysis of the following user data. Structure your response with clear sections and ensure you complete all thoughts. Include:

1. **Summary and Insights** - Key demographic and lifestyle findings
2. **Geographic Insights** - Location-based patterns
3. **Correlation Analysis** - Relationships between different variables
4. **Key Takeaways** - Most important findings and conclusions

User data:
{data}

Please ensure your response is complete and ends with a proper conclusion."""


def build_summary_prompt(rows: Sequence[Dict[str, Any]]) -> str:
    # default=str covers Decimal values from Postgres drivers
    return SUMMARY_PROMPT_TEMPLATE.format(data=json.dumps(list(rows), indent=2, default=str))


async def summarize(client: CompletionClient, rows: Sequence[Dict[str, Any]]) -> str:
    """
    Summarize rows with the completion service.

    Raises:
        CompletionError: when the service call fails
    """
    try:
        return await client.complete_prompt(build_summary_prompt(rows), max_tokens=1024, temperature=0.3)
    except EmptyCompletionError:
        logger.warning("Summary request returned no text")
        return NO_SUMMARY
