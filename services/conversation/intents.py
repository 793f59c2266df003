"""
Heuristic intent classification.

Patterns are checked in a fixed priority order and the first match wins.
Greetings and farewells go first because they are short clauses that would
otherwise be swallowed by the generic question pattern.
"""

import re

from pydantic import BaseModel, Field

from shared.enums import Intent

QUESTION_MARK_CONFIDENCE = 0.7
UNKNOWN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.9
BASE_CONFIDENCE = 0.5

INTENT_PATTERNS: list[tuple[Intent, re.Pattern]] = [
    (Intent.GREETING, re.compile(r"^(hi|hello|hey|good morning|good afternoon|good evening)\b")),
    (Intent.FAREWELL, re.compile(r"^(bye|goodbye|thanks|thank you|that's all|end)\b")),
    (Intent.QUESTION, re.compile(r"\b(what|how|why|when|where|who|can you|could you|explain|tell me)\b")),
    (Intent.CLARIFICATION, re.compile(r"\b(clarify|explain more|elaborate|can you repeat|what do you mean)\b")),
    (Intent.SUMMARY, re.compile(r"\b(summarize|summary|overview|main points|key points|key takeaways)\b")),
    (Intent.NAVIGATION, re.compile(r"\b(go to|show me|navigate|slide|page|next|previous)\b")),
]


class IntentResult(BaseModel):
    intent: Intent
    confidence: float = Field(..., ge=0.0, le=1.0)
    raw_input: str = ""


class IntentClassifier:
    """Maps free text to one of the conversational intents."""

    def __init__(self, patterns: list[tuple[Intent, re.Pattern]] | None = None) -> None:
        self.patterns = patterns or INTENT_PATTERNS

    def detect(self, text: str | None) -> IntentResult:
        raw_input = text or ""
        clean = raw_input.strip().lower()
        if not clean:
            return IntentResult(intent=Intent.UNKNOWN, confidence=0.0, raw_input=raw_input)

        ends_with_question = clean.endswith("?")
        for intent, pattern in self.patterns:
            match = pattern.search(clean)
            if match is None:
                continue
            confidence = self.confidence_for(match.group(0), clean)
            if intent is Intent.QUESTION and ends_with_question:
                confidence = max(confidence, QUESTION_MARK_CONFIDENCE)
            return IntentResult(intent=intent, confidence=confidence, raw_input=raw_input)

        if ends_with_question:
            return IntentResult(intent=Intent.QUESTION, confidence=QUESTION_MARK_CONFIDENCE, raw_input=raw_input)
        return IntentResult(intent=Intent.UNKNOWN, confidence=UNKNOWN_CONFIDENCE, raw_input=raw_input)

    @staticmethod
    def confidence_for(matched: str, clean_input: str) -> float:
        """Longer matches relative to the input score higher."""
        return round(min(MAX_CONFIDENCE, BASE_CONFIDENCE + len(matched) / len(clean_input)), 4)
