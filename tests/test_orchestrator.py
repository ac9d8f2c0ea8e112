import asyncio

from pageguide.agent.dom_scanner import ActionCandidate
from pageguide.agent.highlight import HighlightResult
from pageguide.agent.llm_client import QUOTA_MESSAGE, GuidedAnswer
from pageguide.agent.orchestrator import resolve_guided_answer, run_guided_request
from pageguide.agent.page_text import PageContent
from pageguide.agent.prompts import NOT_FOUND_PHRASE
from pageguide.agent.reconciler import SuggestedTarget

PAGE = PageContent(title="Clinic", url="https://clinic.example/", text="Welcome to the clinic.")
CATALOG = [
    ActionCandidate(selector="#book", label="Book an appointment", tag="a"),
    ActionCandidate(selector="#contact", label="Contact us", tag="a"),
]


class FakeAnswerer:
    def __init__(self, guided=None, error=None):
        self.guided = guided
        self.error = error
        self.calls = []

    async def answer_guided(self, page, actions, question, language="en"):
        self.calls.append((page, list(actions), question))
        if self.error is not None:
            raise self.error
        return self.guided


class FakeHighlighter:
    def __init__(self, result=None):
        self.result = result or HighlightResult(ok=True)
        self.activated = []

    async def activate(self, selector, note):
        self.activated.append((selector, note))
        return self.result


def patch_page(monkeypatch, catalog=CATALOG):
    async def fake_read(_page):
        return PAGE

    async def fake_scan(_page, max_actions=40):
        return list(catalog)[:max_actions]

    monkeypatch.setattr("pageguide.agent.orchestrator.read_page_content", fake_read)
    monkeypatch.setattr("pageguide.agent.orchestrator.scan_action_catalog", fake_scan)


def test_guided_request_highlights_and_speaks(monkeypatch):
    patch_page(monkeypatch)
    answerer = FakeAnswerer(GuidedAnswer(answer="Step 1. Click Contact us.", target=SuggestedTarget("#contact")))
    highlighter = FakeHighlighter()
    spoken = []

    async def fake_speak(text):
        spoken.append(text)
        return b"RIFF...."

    result = asyncio.run(
        run_guided_request(object(), "how do I contact you", answerer=answerer, highlighter=highlighter, speak=fake_speak)
    )

    assert result.answer == "Step 1. Click Contact us."
    assert result.target.selector == "#contact"
    assert result.target.label == "Contact us"
    assert highlighter.activated == [("#contact", "Click here")]
    assert spoken == ["Step 1. Click Contact us."]
    assert result.audio == b"RIFF...."
    assert result.catalog_size == 2
    assert answerer.calls[0][1] == CATALOG


def test_failed_answerer_still_yields_heuristic_target_and_steps(monkeypatch):
    patch_page(monkeypatch)
    answerer = FakeAnswerer(error=RuntimeError("Error code: 429"))
    highlighter = FakeHighlighter()

    result = asyncio.run(
        run_guided_request(
            object(), "I want to book an appointment", answerer=answerer, highlighter=highlighter, with_audio=False
        )
    )

    assert result.target.selector == "#book"
    assert result.used_fallback is True
    assert "Book an appointment" in result.answer
    assert result.answer_error == QUOTA_MESSAGE
    assert result.audio is None
    assert highlighter.activated[0][0] == "#book"


def test_speech_failure_keeps_text_and_highlight(monkeypatch):
    patch_page(monkeypatch)
    answerer = FakeAnswerer(GuidedAnswer(answer="Click Book an appointment.", target=None))
    highlighter = FakeHighlighter()

    async def broken_speak(_text):
        raise OSError("connection refused")

    result = asyncio.run(
        run_guided_request(
            object(), "book an appointment", answerer=answerer, highlighter=highlighter, speak=broken_speak
        )
    )

    assert result.answer == "Click Book an appointment."
    assert result.target.source == "heuristic"
    assert result.highlight.ok is True
    assert result.audio is None
    assert result.speech_error == "connection refused"


def test_nothing_found_passes_sentinel_through(monkeypatch):
    patch_page(monkeypatch)
    answerer = FakeAnswerer(GuidedAnswer(answer=NOT_FOUND_PHRASE))
    highlighter = FakeHighlighter()

    result = asyncio.run(
        run_guided_request(object(), "what is the weather on mars", answerer=answerer, highlighter=highlighter, with_audio=False)
    )

    assert result.answer == NOT_FOUND_PHRASE
    assert result.target is None
    assert result.highlight is None
    assert highlighter.activated == []


def test_resolve_without_answerer_uses_heuristic():
    reconciliation, error = asyncio.run(resolve_guided_answer(PAGE, CATALOG, "contact support", None))

    assert error is None
    assert reconciliation.target.selector == "#contact"
    assert reconciliation.used_fallback is True


def test_empty_external_answer_counts_as_not_found():
    answerer = FakeAnswerer(GuidedAnswer(answer="", target=SuggestedTarget("#book", "Book an appointment")))

    reconciliation, _ = asyncio.run(resolve_guided_answer(PAGE, CATALOG, "book", answerer))

    assert reconciliation.used_fallback is True
    assert reconciliation.target.source == "external"
