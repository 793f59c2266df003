"""Tests for heuristic intent classification."""

import pytest

from services.conversation.intents import IntentClassifier
from shared.enums import Intent


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hello there", Intent.GREETING),
        ("good morning everyone", Intent.GREETING),
        ("Thanks, that's all", Intent.FAREWELL),
        ("bye", Intent.FAREWELL),
        ("How does the turbine work", Intent.QUESTION),
        ("Please clarify the last point", Intent.CLARIFICATION),
        ("Give me a summary", Intent.SUMMARY),
        ("Go to the next slide", Intent.NAVIGATION),
        ("banana", Intent.UNKNOWN),
    ],
)
def test_detects_intent(classifier, text, expected):
    assert classifier.detect(text).intent is expected


def test_question_with_question_mark_is_confident(classifier):
    result = classifier.detect("What is wind efficiency?")

    assert result.intent is Intent.QUESTION
    assert result.confidence >= 0.7
    assert result.raw_input == "What is wind efficiency?"


def test_bare_question_mark_is_a_question(classifier):
    result = classifier.detect("Turbines in winter?")

    assert result.intent is Intent.QUESTION
    assert result.confidence == 0.7


def test_greeting_words_inside_other_words_do_not_match(classifier):
    assert classifier.detect("history of energy").intent is not Intent.GREETING
    assert classifier.detect("endless growth").intent is not Intent.FAREWELL


def test_confidence_grows_with_match_share(classifier):
    short = classifier.detect("hi")
    long = classifier.detect("hi, I have a couple of thoughts about this deck")

    assert short.confidence == 0.9
    assert 0.5 < long.confidence < short.confidence


def test_empty_input_is_unknown_with_zero_confidence(classifier):
    result = classifier.detect("   ")

    assert result.intent is Intent.UNKNOWN
    assert result.confidence == 0.0


def test_unmatched_input_has_low_confidence(classifier):
    assert classifier.detect("banana").confidence == 0.3
