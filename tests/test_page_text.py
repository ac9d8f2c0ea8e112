import asyncio

import pytest

from pageguide.agent.page_text import (
    EXTRACT_PAGE_TEXT_JS,
    MIN_TEXT_CHUNK_LENGTH,
    extract_page_text,
    read_page_content,
)


class FakePage:
    def __init__(self, chunks, title="Clinic", url="https://clinic.example/"):
        self.chunks = chunks
        self._title = title
        self.url = url
        self.calls = []

    async def evaluate(self, script, arg=None):
        self.calls.append((script, arg))
        if isinstance(self.chunks, Exception):
            raise self.chunks
        return self.chunks

    async def title(self):
        return self._title


def test_text_chunks_are_joined_with_blank_lines():
    page = FakePage(["Opening hours are Monday to Friday.", "", "Call us to book an appointment today."])

    text = asyncio.run(extract_page_text(page))

    assert text == "Opening hours are Monday to Friday.\n\nCall us to book an appointment today."
    assert page.calls == [(EXTRACT_PAGE_TEXT_JS, MIN_TEXT_CHUNK_LENGTH)]


def test_read_page_content_collects_title_and_url():
    content = asyncio.run(read_page_content(FakePage(["Some long paragraph of visible page text."])))

    assert content.to_payload() == {
        "title": "Clinic",
        "url": "https://clinic.example/",
        "text": "Some long paragraph of visible page text.",
    }


def test_empty_page_reads_as_empty_text():
    content = asyncio.run(read_page_content(FakePage(None, title=None)))

    assert content.text == ""
    assert content.title == ""


def test_page_read_failure_propagates():
    with pytest.raises(RuntimeError, match="Execution context was destroyed"):
        asyncio.run(read_page_content(FakePage(RuntimeError("Execution context was destroyed"))))
