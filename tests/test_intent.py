from pageguide.agent.dom_scanner import ActionCandidate
from pageguide.agent.intent import (
    INTENT_CATEGORIES,
    matched_intents,
    pick_heuristic_target,
    score_candidate,
    tokenize,
)


def candidate(label: str, tag: str = "a", selector: str | None = None) -> ActionCandidate:
    return ActionCandidate(selector=selector or f"#{label.lower().replace(' ', '-')}", label=label, tag=tag)


def test_book_appointment_request_picks_booking_control():
    candidates = [candidate("Book an appointment"), candidate("Contact us")]

    target = pick_heuristic_target(candidates, "I want to book an appointment")

    assert target is not None
    assert target.label == "Book an appointment"
    assert target.selector == "#book-an-appointment"
    assert target.score == 2 * 3 + 4


def test_unrelated_request_has_no_target():
    candidates = [candidate("Book an appointment", tag="button"), candidate("Contact us", tag="button")]

    assert pick_heuristic_target(candidates, "what are the opening hours") is None


def test_button_tag_alone_does_not_produce_a_target():
    candidates = [candidate("Go", tag="button"), candidate("Learn more", tag="button")]

    assert pick_heuristic_target(candidates, "tell me about parking") is None


def test_intent_bonus_without_shared_tokens():
    candidates = [candidate("Home"), candidate("Schedule a visit")]

    target = pick_heuristic_target(candidates, "can I get an appointment?")

    assert target is not None
    assert target.label == "Schedule a visit"
    assert target.score == 4


def test_button_breaks_ties_between_real_matches():
    candidates = [candidate("Contact support", tag="a"), candidate("Contact sales", tag="button")]

    target = pick_heuristic_target(candidates, "contact")

    assert target.label == "Contact sales"


def test_ties_keep_first_candidate():
    candidates = [candidate("Pay invoice", selector="#one"), candidate("Pay invoice", selector="#two")]

    target = pick_heuristic_target(candidates, "pay my invoice")

    assert target.selector == "#one"


def test_empty_request_or_catalog():
    assert pick_heuristic_target([candidate("Sign in")], "") is None
    assert pick_heuristic_target([candidate("Sign in")], "a b") is None
    assert pick_heuristic_target([], "sign in please") is None


def test_tokenize_drops_short_tokens_and_punctuation():
    assert tokenize("Sign-in / log_in, NOW!") == ["sign", "log", "now"]
    assert tokenize(None) == []


def test_matched_intents_follow_category_table():
    assert matched_intents(["checkout", "please"]) == ["checkout"]
    assert matched_intents(["register", "login"]) == ["sign_in", "register"]
    assert set(INTENT_CATEGORIES) >= {"appointment", "sign_in", "register", "checkout", "contact"}


def test_score_counts_each_label_token_once():
    c = candidate("Book book BOOK")

    assert score_candidate(c, {"book"}, []) == 3
