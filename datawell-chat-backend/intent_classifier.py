"""
Intent Classifier for DataWell
Maps a user message (plus conversation history) to one of six intents.

Two strategies share one interface:
- LLMIntentStrategy: asks the completion service for a label
- HeuristicIntentStrategy: phrase lists and keyword detection, no LLM

IntentClassifier tries them in order; the heuristic always answers,
so classification never fails.
"""

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

from llm_client import CompletionClient, CompletionError, format_history

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    GREETING = "greeting"
    NON_DATA = "non_data"
    APPRECIATION = "appreciation"
    DANGEROUS = "dangerous"
    UNCLEAR = "unclear"
    DATA_QUERY = "data_query"


INTENT_PROMPT_TEMPLATE = """You are an expert intent classifier for a data analysis chatbot. Classify the user's message into one of these intents:

INTENTS:
- 'greeting': Hello, hi, hey, good morning, how are you, hi there, hey there, etc.
- 'non_data': Thanks, nothing, nope, no, bye, goodbye, see you, help, what can you do, okay, ok, alright, sure, etc.
- 'appreciation': Nice, cool, great, awesome, good, excellent, perfect, etc.
- 'dangerous': Delete, drop, update, insert, remove, clear, wipe, etc.
- 'unclear': Vague, confusing, or unclear requests
- 'data_query': Questions about data, statistics, analysis, etc.

USER MESSAGE: "{message}"

CONVERSATION CONTEXT:
{history}

CLASSIFICATION RULES:
1. If it's a greeting or social interaction (hi, hello, hey, good morning, etc.) -> 'greeting'
2. If it's a non-data response (thanks, nothing, nope, bye, etc.) -> 'non_data'
3. If it's appreciation or positive feedback (nice, cool, great, awesome, etc.) -> 'appreciation'
4. If it's a dangerous operation (delete, drop, update, etc.) -> 'dangerous'
5. If it's unclear, vague, or random words without clear intent -> 'unclear'
6. If it's clearly asking about data, statistics, or analysis with specific questions -> 'data_query'

IMPORTANT: Only classify as 'data_query' if the user is clearly asking a specific question about data. Random words, unclear phrases, or vague requests should be classified as 'unclear'.

EXAMPLES:
- "hi there" -> 'greeting'
- "nothing" -> 'non_data'
- "cool" -> 'appreciation'
- "delete all" -> 'dangerous'
- "asdf" -> 'unclear'
- "blah blah" -> 'unclear'
- "how many users ?" -> 'data_query'
- "what's the average age" -> 'data_query'
- "show me users" -> 'data_query'

Return ONLY the intent name, nothing else."""


class IntentStrategy(ABC):
    """One way of producing an intent label. None means 'no opinion'."""

    name = "base"

    @abstractmethod
    async def classify(self, message: str, history: Sequence[Dict[str, str]]) -> Optional[Intent]:
        ...


class LLMIntentStrategy(IntentStrategy):
    """Remote label from the completion service; rejects anything off-list"""

    name = "llm"

    def __init__(self, client: CompletionClient):
        self.client = client

    @staticmethod
    def parse_label(text: str) -> Optional[Intent]:
        label = text.strip().strip("'\"`.").strip().lower()
        try:
            return Intent(label)
        except ValueError:
            return None

    async def classify(self, message: str, history: Sequence[Dict[str, str]]) -> Optional[Intent]:
        prompt = INTENT_PROMPT_TEMPLATE.format(message=message, history=format_history(history))
        try:
            raw = await self.client.complete_prompt(prompt, max_tokens=50, temperature=0.1)
        except CompletionError as e:
            logger.warning(f"LLM intent classification unavailable: {str(e)}")
            return None

        intent = self.parse_label(raw)
        if intent is None:
            logger.info(f"Invalid intent from LLM: {raw!r}")
        return intent


class HeuristicIntentStrategy(IntentStrategy):
    """Fast pattern matching without LLM calls (order matters)"""

    name = "heuristic"

    APPRECIATION_WORDS = {
        'nice', 'cool', 'great', 'awesome', 'good', 'excellent', 'perfect',
        'amazing', 'wow', 'fantastic',
    }

    NON_DATA_WORDS = {
        'thanks', 'thank you', 'bye', 'goodbye', 'see you', 'help', 'what can you do',
        'nothing', 'nope', 'nada', 'okay', 'ok', 'alright', 'sure',
    }

    GREETING_WORDS = {
        'hi', 'hello', 'hey', 'good morning', 'good afternoon', 'good evening',
        'how are you', "what's up", 'sup',
    }

    GREETING_PHRASES = ['hi there', 'hey there', 'hello there']

    DANGEROUS_WORDS = ['delete', 'drop', 'update', 'insert', 'remove', 'clear', 'wipe']

    DATA_KEYWORDS = [
        'users', 'data', 'count', 'average', 'show', 'how many', 'what', 'age', 'height',
        'weight', 'smoking', 'drinks', 'bmi', 'california', 'occupation', 'education',
        'calculate', 'find', 'get', 'list', 'records', 'database',
    ]

    QUESTION_PATTERNS = [
        'how many', 'what is', 'what are', 'show me', 'tell me', 'give me', 'find me',
        'calculate', 'average', 'count', 'total', 'show all', 'list all',
    ]

    SIMPLE_DATA_REQUESTS = [
        'show all users', 'list users', 'show users', 'all users', 'users in database',
        'records in database',
    ]

    MIN_LENGTH = 3

    def __init__(self):
        # Trailing punctuation would defeat the exact-match lists ("thanks!")
        self._trailing = re.compile(r"[\s!.?,]+$")

    def normalize(self, message: str) -> str:
        return self._trailing.sub("", message.lower().strip())

    async def classify(self, message: str, history: Sequence[Dict[str, str]]) -> Optional[Intent]:
        return self.route(message)

    def route(self, message: str) -> Intent:
        text = self.normalize(message)

        if text in self.APPRECIATION_WORDS:
            return Intent.APPRECIATION
        if text in self.NON_DATA_WORDS:
            return Intent.NON_DATA
        if text in self.GREETING_WORDS:
            return Intent.GREETING
        if any(phrase in text for phrase in self.GREETING_PHRASES):
            return Intent.GREETING
        if any(word in text for word in self.DANGEROUS_WORDS):
            return Intent.DANGEROUS
        if len(text) < self.MIN_LENGTH:
            return Intent.UNCLEAR

        has_data_keyword = any(keyword in text for keyword in self.DATA_KEYWORDS)
        has_question = any(pattern in text for pattern in self.QUESTION_PATTERNS)
        has_simple_request = any(pattern in text for pattern in self.SIMPLE_DATA_REQUESTS)

        if has_data_keyword and (has_question or has_simple_request):
            return Intent.DATA_QUERY
        return Intent.UNCLEAR

    def explain_decision(self, message: str) -> dict:
        """Explain routing decision for debugging"""
        text = self.normalize(message)
        return {
            "message": message,
            "intent": self.route(message).value,
            "matched_data_keywords": [kw for kw in self.DATA_KEYWORDS if kw in text],
            "matched_question_patterns": [p for p in self.QUESTION_PATTERNS if p in text],
            "matched_dangerous_words": [w for w in self.DANGEROUS_WORDS if w in text],
        }


class IntentClassifier:
    """Tries each strategy in order; the first label wins"""

    def __init__(self, strategies: List[IntentStrategy]):
        if not strategies:
            raise ValueError("IntentClassifier needs at least one strategy")
        self.strategies = strategies

    async def classify(self, message: str, history: Sequence[Dict[str, str]] = ()) -> Intent:
        for strategy in self.strategies:
            intent = await strategy.classify(message, history)
            if intent is not None:
                logger.info(f"Intent '{intent.value}' via {strategy.name} strategy")
                return intent

        logger.warning("No strategy produced an intent, defaulting to unclear")
        return Intent.UNCLEAR


def create_intent_classifier(client: Optional[CompletionClient]) -> IntentClassifier:
    """LLM first when a client is available, heuristics as the fallback"""
    strategies: List[IntentStrategy] = []
    if client is not None:
        strategies.append(LLMIntentStrategy(client))
    strategies.append(HeuristicIntentStrategy())
    return IntentClassifier(strategies)
