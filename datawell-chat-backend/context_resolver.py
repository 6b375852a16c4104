"""
DataWell - Conversation Context Resolution
==========================================

Lets users ask follow-up questions ("how many of them smoke?", "show them",
"users 11-20") without restating the original question.

The resolver is RULE-BASED (no LLM):
1. Detects follow-up phrasing in the current message
2. Finds the most recent prior user question that is a real data question
3. Returns a resolution the SQL generator can build on

History is supplied by the caller on every request and treated as
read-only. Nothing is stored between requests.

ARCHITECTURAL POSITION:
    User Message -> Intent -> [CONTEXT RESOLVER] -> SQL Generator -> Validator
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

logger = logging.getLogger(__name__)


# =============================================================================
# PHRASE PATTERNS
# =============================================================================

# Questions about data this table does not hold
NAME_PATTERN = re.compile(r"(first name|last name|name|firstname|lastname)", re.IGNORECASE)
SALARY_PATTERN = re.compile(r"(salary|income|wage|pay|money|earnings|esalary)", re.IGNORECASE)

# Whole-message references to the previous result
CONTEXT_PHRASE_PATTERN = re.compile(
    r"^(show them|show me those|display them|display those|show those|show the results|show the data)$",
    re.IGNORECASE,
)

FOLLOW_UP_PATTERN = re.compile(
    r"(how many of them|how many of those|what about them|what about those|show me the|show the|filter by|sort by)",
    re.IGNORECASE,
)

PAGINATION_PATTERN = re.compile(
    r"(show me more|show more|next page|next 10|from \d+ to \d+|users \d+-\d+|from \d+-\d+|users with bmi from \d+-\d+)",
    re.IGNORECASE,
)

NEXT_PAGE_PATTERN = re.compile(r"(show me more|show more|next page|next 10)", re.IGNORECASE)
RANGE_PATTERN = re.compile(r"(\d+)\s*(?:-|to)\s*(\d+)", re.IGNORECASE)

PAGE_SIZE = 10


@dataclass(frozen=True)
class Page:
    """
    A 1-based inclusive row window.

    Attributes:
        start: First row number shown to the user
        end: Last row number shown to the user
        limit: SQL LIMIT
        offset: SQL OFFSET
    """
    start: int
    end: int
    limit: int
    offset: int

    @classmethod
    def from_range(cls, start: int, end: int) -> "Page":
        return cls(start=start, end=end, limit=end - start + 1, offset=start - 1)

    @classmethod
    def next_block(cls) -> "Page":
        # Without an explicit range the previous page is assumed to be 1-10
        return cls.from_range(PAGE_SIZE + 1, 2 * PAGE_SIZE)


@dataclass(frozen=True)
class ContextResolution:
    """
    Result of resolving a follow-up message.

    Attributes:
        anchor: The earlier user question the follow-up builds on
        message: The current follow-up message
        kind: "pagination" or "reference"
        page: Row window (pagination only)
    """
    anchor: str
    message: str
    kind: str
    page: Optional[Page] = None

    @property
    def is_pagination(self) -> bool:
        return self.kind == "pagination"


def is_deflected_question(text: str) -> bool:
    """Name or salary questions are answered with a fixed explanation, never SQL."""
    return bool(NAME_PATTERN.search(text) or SALARY_PATTERN.search(text))


class FollowUpDetector:
    """Detects follow-up phrasing. Pure pattern matching."""

    def is_context_phrase(self, message: str) -> bool:
        return bool(CONTEXT_PHRASE_PATTERN.match(message.strip()))

    def is_follow_up(self, message: str) -> bool:
        return bool(FOLLOW_UP_PATTERN.search(message.strip()))

    def is_pagination(self, message: str) -> bool:
        return bool(PAGINATION_PATTERN.search(message.strip()))

    def detect(self, message: str) -> Optional[str]:
        """Return the follow-up kind ("pagination" or "reference"), or None."""
        if self.is_pagination(message):
            return "pagination"
        if self.is_context_phrase(message) or self.is_follow_up(message):
            return "reference"
        return None

    def extract_page(self, message: str) -> Optional[Page]:
        """
        Derive the row window from a pagination message.

        "users 11-20" -> limit 10, offset 10
        "show me more" -> next block of 10 (rows 11-20)
        """
        match = RANGE_PATTERN.search(message)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            if 1 <= start <= end:
                return Page.from_range(start, end)
            logger.info(f"Ignoring invalid range {start}-{end}")
            return None

        if NEXT_PAGE_PATTERN.search(message):
            return Page.next_block()
        return None


class ContextResolver:
    """
    Anchors follow-up messages on the previous substantive question.

    Declines (returns None) when the message is not a follow-up, when there
    is no history, or when no prior user turn qualifies as an anchor.
    """

    def __init__(self):
        self.detector = FollowUpDetector()

    def find_anchor(self, history: Sequence[Dict[str, str]]) -> Optional[str]:
        """Most recent prior user message that is itself a data question."""
        for turn in reversed(list(history)):
            if turn.get("role") != "user":
                continue
            content = (turn.get("content") or "").strip()
            if not content or is_deflected_question(content):
                continue
            if self.detector.is_context_phrase(content) or self.detector.is_pagination(content):
                continue
            return content
        return None

    def resolve(self, message: str, history: Sequence[Dict[str, str]]) -> Optional[ContextResolution]:
        if not history:
            return None

        kind = self.detector.detect(message)
        if kind is None:
            return None

        anchor = self.find_anchor(history)
        if anchor is None:
            logger.info("Follow-up detected but no prior data question to anchor on")
            return None

        page = None
        if kind == "pagination":
            page = self.detector.extract_page(message)
            if page is None:
                kind = "reference"

        logger.info(f"Context resolved ({kind}): anchor='{anchor[:60]}'")
        return ContextResolution(anchor=anchor, message=message.strip(), kind=kind, page=page)


def create_context_resolver() -> ContextResolver:
    return ContextResolver()

