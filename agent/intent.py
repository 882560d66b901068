"""
Intent Detector - Classifies the purpose of a user message.

This module:
1. Matches keyword rules per intent type (word boundaries, case-insensitive)
2. Picks the longest matching keyword; ties go to rule declaration order
3. Extracts entities (priority, deadline, assignee, dimensions, dpi, domain)
4. Sets the capability flags used by handlers and the fallback bridge

Detection never fails: no match yields UNKNOWN with confidence 0.0.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from agent.models import Intent, IntentType

RAG_INTENTS = {IntentType.HOWTO, IntentType.INFORMATION, IntentType.UNKNOWN}
DOMAIN_DATA_INTENTS = {
    IntentType.TASK_QUERY,
    IntentType.WORKLOAD_ANALYSIS,
    IntentType.CALCULATION,
}

# Order matters: it breaks ties between keywords of equal length
DEFAULT_RULES: List[Tuple[IntentType, List[str]]] = [
    (
        IntentType.GREETING,
        [
            "hi",
            "hello",
            "hey",
            "good morning",
            "good afternoon",
            "good evening",
            "greetings",
            "howdy",
        ],
    ),
    (
        IntentType.TASK_CREATION,
        [
            "create task",
            "new task",
            "add task",
            "add a task",
            "make a task",
            "create a task",
            "create a task for",
            "assign a task",
        ],
    ),
    (
        IntentType.TASK_QUERY,
        [
            "show tasks",
            "show my tasks",
            "my tasks",
            "what tasks",
            "task status",
            "task list",
            "overdue tasks",
            "upcoming tasks",
            "pending tasks",
            "completed tasks",
            "who is working on",
            "what is the status of",
        ],
    ),
    (
        IntentType.WORKLOAD_ANALYSIS,
        [
            "workload",
            "who is busy",
            "who is available",
            "team capacity",
            "who has time",
            "who can take",
            "distribute tasks",
            "balance workload",
        ],
    ),
    (
        IntentType.CALCULATION,
        [
            "calculate",
            "dpi",
            "print size",
            "how big",
            "how large",
            "what size",
            "resolution",
            "pixels",
        ],
    ),
    (
        IntentType.HOWTO,
        [
            "how do i",
            "how to",
            "how can i",
            "steps to",
            "guide",
            "tutorial",
        ],
    ),
    (
        IntentType.INFORMATION,
        [
            "what is",
            "what are",
            "tell me about",
            "explain",
            "information about",
            "info on",
        ],
    ),
]

# Entity patterns
_URGENT = re.compile(r"\b(urgent|asap|immediately)\b", re.IGNORECASE)
_LEVEL_PRIORITY = re.compile(
    r"\b(high|medium|normal|low)\s+priority\b|\bpriority[:\s]+(high|medium|normal|low)\b",
    re.IGNORECASE,
)
_DEADLINE = re.compile(
    r"\b(today|tomorrow|this week|next week|end of (?:the )?(?:day|week|month))\b",
    re.IGNORECASE,
)
_WEEKDAY = re.compile(
    r"\b(?:by|on|due|before)\s+(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
    re.IGNORECASE,
)
_ASSIGN_TO = re.compile(r"\bassign(?:ed)?\s+(?:it\s+|this\s+)?to\s+(\w+)", re.IGNORECASE)
_FOR_NAME = re.compile(r"\bfor\s+([A-Z][a-zA-Z'-]+)")
_DIMENSIONS = re.compile(r"\b(\d+)\s*(?:x|×|by)\s*(\d+)\b", re.IGNORECASE)
_DPI = re.compile(r"\b(\d+)\s*dpi\b", re.IGNORECASE)
_DOMAIN = re.compile(
    r"\b(print(?:ing|s|ed)?|artwork|dpi|vector|bleed|cmyk|transfer|garment)\b",
    re.IGNORECASE,
)

# Capitalized words that follow "for" but are not names
_NOT_NAMES = {"The", "This", "That", "Today", "Tomorrow", "Next", "Me", "Us", "Everyone"}


class IntentDetector:
    """Keyword-rule intent classifier."""

    def __init__(self, rules: Optional[List[Tuple[IntentType, List[str]]]] = None):
        self.rules = rules if rules is not None else DEFAULT_RULES

        # (intent, keyword, compiled pattern, declaration index)
        self._patterns = []
        order = 0
        for intent_type, keywords in self.rules:
            for kw in keywords:
                words = [re.escape(w) for w in kw.lower().split()]
                pattern = re.compile(
                    r"(?<!\w)" + r"\s+".join(words) + r"(?!\w)", re.IGNORECASE
                )
                self._patterns.append((intent_type, kw, pattern, order))
                order += 1

    def detect(self, message: str) -> Intent:
        """
        Classifies a message.

        Args:
            message: User text (context markers already stripped)

        Returns:
            Intent with type, confidence, entities and capability flags
        """
        text = message or ""
        best = None
        for intent_type, kw, pattern, order in self._patterns:
            if pattern.search(text) is None:
                continue
            if best is None or len(kw) > len(best[1]):
                best = (intent_type, kw, order)

        entities = extract_entities(text)

        if best is None:
            return Intent(
                type=IntentType.UNKNOWN,
                confidence=0.0,
                original_message=message,
                entities=entities,
                requires_rag=True,
                requires_domain_data=False,
            )

        intent_type, keyword, _ = best
        return Intent(
            type=intent_type,
            confidence=keyword_confidence(keyword),
            original_message=message,
            entities=entities,
            matched_keyword=keyword,
            requires_rag=intent_type in RAG_INTENTS,
            requires_domain_data=intent_type in DOMAIN_DATA_INTENTS,
        )


def keyword_confidence(keyword: str) -> float:
    """More words in the keyword = more specific = more confident."""
    words = len(keyword.split())
    return round(min(0.6 + 0.1 * words, 0.95), 2)


def extract_entities(text: str) -> Dict[str, Any]:
    """Pulls whatever entities are present in the message."""
    entities: Dict[str, Any] = {}

    if _URGENT.search(text):
        entities["priority"] = "urgent"
    else:
        level = _LEVEL_PRIORITY.search(text)
        if level:
            value = (level.group(1) or level.group(2)).lower()
            entities["priority"] = "medium" if value == "normal" else value

    deadline = _DEADLINE.search(text)
    if deadline:
        entities["deadline"] = re.sub(r"\s+", "_", deadline.group(1).lower())
    else:
        weekday = _WEEKDAY.search(text)
        if weekday:
            entities["deadline"] = weekday.group(1).lower()

    assignee = _ASSIGN_TO.search(text)
    if assignee:
        entities["assignee"] = assignee.group(1)
    else:
        for match in _FOR_NAME.finditer(text):
            if match.group(1) not in _NOT_NAMES:
                entities["assignee"] = match.group(1)
                break

    dims = _DIMENSIONS.search(text)
    if dims:
        entities["dimensions"] = {"width": int(dims.group(1)), "height": int(dims.group(2))}

    dpi = _DPI.search(text)
    if dpi:
        entities["dpi"] = int(dpi.group(1))

    if _DOMAIN.search(text):
        entities["domain"] = "printing"

    return entities
