from __future__ import annotations

import logging
from dataclasses import dataclass

from playwright.async_api import Page

MIN_TEXT_CHUNK_LENGTH = 30

EXTRACT_PAGE_TEXT_JS = """
(minLength) => {
    const skipped = new Set(["SCRIPT", "STYLE", "NOSCRIPT", "IFRAME", "SVG"]);
    const isVisible = (el) => {
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        return style && style.display !== "none" && style.visibility !== "hidden"
            && style.opacity !== "0" && rect.width > 0 && rect.height > 0;
    };
    if (!document.body) return [];
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, {
        acceptNode(node) {
            const parent = node.parentElement;
            if (!parent) return NodeFilter.FILTER_REJECT;
            if (skipped.has(parent.tagName.toUpperCase())) return NodeFilter.FILTER_REJECT;
            if (!isVisible(parent)) return NodeFilter.FILTER_REJECT;
            if (node.textContent.trim().length < minLength) return NodeFilter.FILTER_REJECT;
            return NodeFilter.FILTER_ACCEPT;
        },
    });
    const chunks = [];
    while (walker.nextNode()) chunks.push(walker.currentNode.textContent.trim());
    return chunks;
}
"""


@dataclass
class PageContent:
    title: str
    url: str
    text: str

    def to_payload(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url, "text": self.text}


async def extract_page_text(page: Page) -> str:
    chunks = await page.evaluate(EXTRACT_PAGE_TEXT_JS, MIN_TEXT_CHUNK_LENGTH)
    return "\n\n".join(chunk for chunk in chunks or [] if chunk)


async def read_page_content(page: Page) -> PageContent:
    """Read title, URL and visible prose of the page. Failures propagate to the caller."""

    text = await extract_page_text(page)
    title = await page.title()
    logging.debug("page_read url=%s chars=%s", page.url, len(text))
    return PageContent(title=title or "", url=page.url, text=text)
