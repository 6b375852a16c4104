"""
Test doubles shared by the test modules.

ScriptedCompletionClient stands in for CompletionClient: each rule maps
one or more substrings of the last message to a reply (or an exception
to raise). Calls are recorded for assertions.
"""

from types import SimpleNamespace
from typing import Dict, List, Sequence

from llm_client import CompletionError

INTENT_PROMPT_MARKER = "expert intent classifier"
SQL_PROMPT_MARKER = "expert SQL assistant"
FOLLOW_UP_PROMPT_MARKER = "The user previously asked"
ERROR_PROMPT_MARKER = "expert SQL error analyzer"
SUMMARY_PROMPT_MARKER = "comprehensive summary"


class ScriptedCompletionClient:

    def __init__(self, rules=None, default=None):
        self.rules = list(rules or [])
        self.default = default
        self.calls: List[Dict] = []

    def _matches(self, needle, prompt: str) -> bool:
        needles = needle if isinstance(needle, tuple) else (needle,)
        return all(part in prompt for part in needles)

    async def complete(self, messages: Sequence[Dict[str, str]], max_tokens: int = 200, temperature: float = 0.1) -> str:
        prompt = messages[-1]["content"]
        self.calls.append({
            "messages": list(messages),
            "prompt": prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })

        reply = self.default
        for needle, candidate in self.rules:
            if self._matches(needle, prompt):
                reply = candidate
                break

        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise CompletionError("no scripted reply")
        return reply

    async def complete_prompt(self, prompt: str, max_tokens: int = 200, temperature: float = 0.1) -> str:
        return await self.complete([{"role": "user", "content": prompt}], max_tokens, temperature)

    def calls_with(self, marker: str) -> List[Dict]:
        return [call for call in self.calls if marker in call["prompt"]]


class FakeLlamaLLM:
    """Mimics the achat() surface of a LlamaIndex LLM."""

    def __init__(self, content: str = "", error: Exception = None):
        self.content = content
        self.error = error
        self.calls = []

    async def achat(self, messages, **kwargs):
        self.calls.append({"messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(message=SimpleNamespace(content=self.content))


class StatusError(Exception):
    """SDK-style exception carrying an HTTP status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


SAMPLE_USERS = [
    {"age": 34, "gender": "Male", "height": 180, "weight": 81, "city": "Los Angeles California",
     "country": "USA", "zip": "90001", "occupation": "Engineer", "education": "Masters",
     "smoking": "Yes", "drinks_per_week": 3},
    {"age": 28, "gender": "Female", "height": 165, "weight": 55, "city": "San Diego California",
     "country": "USA", "zip": "92101", "occupation": "Designer", "education": "Bachelors",
     "smoking": "No", "drinks_per_week": 1},
    {"age": 45, "gender": "Male", "height": 175, "weight": 95, "city": "Austin",
     "country": "USA", "zip": "73301", "occupation": "Teacher", "education": "Bachelors",
     "smoking": "No", "drinks_per_week": 5},
    {"age": 52, "gender": "Female", "height": None, "weight": 70, "city": "Toronto",
     "country": "Canada", "zip": "M5H", "occupation": "Nurse", "education": "Diploma",
     "smoking": "Yes", "drinks_per_week": 0},
]
