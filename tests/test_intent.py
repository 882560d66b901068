"""
Tests for the intent detector.

Covers:
- Correct classification of each intent type
- No match → UNKNOWN with confidence 0.0
- Longest keyword wins, ties by declaration order
- Entity extraction and capability flags
"""

import pytest

from agent.intent import IntentDetector, extract_entities, keyword_confidence
from agent.models import IntentType


@pytest.fixture
def detector():
    return IntentDetector()


class TestIntentClassification:
    """Correct classification per category."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Hello there", IntentType.GREETING),
            ("Please create a task for the reprint", IntentType.TASK_CREATION),
            ("Show my tasks", IntentType.TASK_QUERY),
            ("Who is available this afternoon?", IntentType.WORKLOAD_ANALYSIS),
            ("What print size do I get at 300 dpi?", IntentType.CALCULATION),
            ("How do I prepare a file for DTF?", IntentType.HOWTO),
            ("Tell me about UV DTF", IntentType.INFORMATION),
        ],
    )
    def test_classifies(self, detector, message, expected):
        assert detector.detect(message).type == expected

    def test_unknown(self, detector):
        intent = detector.detect("asdfghjkl random text")
        assert intent.type == IntentType.UNKNOWN
        assert intent.confidence == 0.0
        assert intent.matched_keyword is None

    def test_empty_message_is_unknown(self, detector):
        assert detector.detect("").type == IntentType.UNKNOWN

    def test_case_insensitive(self, detector):
        assert detector.detect("SHOW TASKS").type == IntentType.TASK_QUERY

    def test_word_boundaries(self, detector):
        # "hi" must not match inside "this" or "which"
        assert detector.detect("which one is this").type == IntentType.UNKNOWN


class TestKeywordSpecificity:
    def test_longest_keyword_wins(self, detector):
        intent = detector.detect("hi, create a task for John, high priority")
        assert intent.type == IntentType.TASK_CREATION
        assert intent.matched_keyword == "create a task for"

    def test_tie_goes_to_declaration_order(self, detector):
        # "new task" (task_creation) and "how do i" (howto) have equal length
        intent = detector.detect("how do i add a new task")
        assert intent.type == IntentType.TASK_CREATION

    def test_confidence_grows_with_keyword_words(self):
        assert keyword_confidence("workload") == 0.7
        assert keyword_confidence("who is busy") == pytest.approx(0.9)
        assert keyword_confidence("what is the status of") == 0.95

    def test_multiword_keyword_tolerates_extra_spaces(self, detector):
        assert detector.detect("task   status please").type == IntentType.TASK_QUERY


class TestCapabilityFlags:
    def test_rag_flag(self, detector):
        assert detector.detect("how to cure ink").requires_rag is True
        assert detector.detect("asdf").requires_rag is True
        assert detector.detect("hello").requires_rag is False

    def test_domain_data_flag(self, detector):
        assert detector.detect("show tasks").requires_domain_data is True
        assert detector.detect("workload").requires_domain_data is True
        assert detector.detect("hello").requires_domain_data is False


class TestEntities:
    def test_task_creation_entities(self):
        entities = extract_entities("create a task for John, high priority")
        assert entities["priority"] == "high"
        assert entities["assignee"] == "John"

    def test_urgent_beats_level(self):
        assert extract_entities("urgent, high priority")["priority"] == "urgent"

    def test_assign_to(self):
        assert extract_entities("assign it to maria by friday")["assignee"] == "maria"

    def test_deadline(self):
        assert extract_entities("finish this by next week")["deadline"] == "next_week"
        assert extract_entities("due tomorrow")["deadline"] == "tomorrow"
        assert extract_entities("by Friday")["deadline"] == "friday"

    def test_dimensions_and_dpi(self):
        entities = extract_entities("4000x6000 pixels at 150 DPI")
        assert entities["dimensions"] == {"width": 4000, "height": 6000}
        assert entities["dpi"] == 150
        assert entities["domain"] == "printing"

    def test_nothing_found(self):
        assert extract_entities("just chatting") == {}
