from pageguide.agent.dom_scanner import ActionCandidate
from pageguide.agent.intent import ScoredTarget
from pageguide.agent.prompts import NOT_FOUND_PHRASE
from pageguide.agent.reconciler import (
    SuggestedTarget,
    is_not_found_answer,
    reconcile_targets,
)

T1 = ActionCandidate(selector="#book", label="Book an appointment", tag="a")
T2 = ActionCandidate(selector="#contact", label="Contact us", tag="a")


def test_not_found_answer_with_heuristic_target_falls_back_to_steps():
    result = reconcile_targets(
        ScoredTarget(candidate=T1, score=10),
        None,
        NOT_FOUND_PHRASE,
        "I want to book an appointment",
        [T1, T2],
    )

    assert result.used_fallback is True
    assert result.target.selector == "#book"
    assert result.target.source == "heuristic"
    assert "Book an appointment" in result.answer
    assert "I want to book an appointment" in result.answer
    assert not is_not_found_answer(result.answer)


def test_external_target_beats_heuristic():
    result = reconcile_targets(
        ScoredTarget(candidate=T1, score=10),
        SuggestedTarget(selector="#contact", label="Contact us"),
        "Step 1. Click Contact us.",
        "how do I reach you",
    )

    assert result.target.selector == "#contact"
    assert result.target.source == "external"
    assert result.answer == "Step 1. Click Contact us."
    assert result.used_fallback is False


def test_external_target_without_label_takes_catalog_label():
    result = reconcile_targets(None, SuggestedTarget(selector="#contact"), "Click it.", "contact", [T1, T2])

    assert result.target.label == "Contact us"


def test_blank_external_selector_is_ignored():
    result = reconcile_targets(
        ScoredTarget(candidate=T1, score=4), SuggestedTarget(selector="  "), "Click the button.", "book"
    )

    assert result.target.selector == "#book"
    assert result.target.source == "heuristic"


def test_not_found_without_target_passes_through():
    result = reconcile_targets(None, None, NOT_FOUND_PHRASE, "where is the moon")

    assert result.target is None
    assert result.answer == NOT_FOUND_PHRASE
    assert result.used_fallback is False


def test_regular_answer_is_untouched():
    result = reconcile_targets(ScoredTarget(candidate=T1, score=4), None, "Click Book.", "book")

    assert result.answer == "Click Book."
    assert result.used_fallback is False


def test_sentinel_match_tolerates_apostrophes_case_and_spacing():
    assert is_not_found_answer("I can't find that on this page.")
    assert is_not_found_answer("Sorry.  i CAN’T find\nthat on this page")
    assert is_not_found_answer(NOT_FOUND_PHRASE)
    assert not is_not_found_answer("I can find that on this page.")
    assert not is_not_found_answer(None)
