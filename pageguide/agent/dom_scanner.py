"""Generic DOM scanner that builds the per-request catalog of actionable controls."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from playwright.async_api import Page

ACTIONABLE_SELECTOR = (
    "button, a, [role='button'], input[type='submit'], input[type='button'], [aria-label], [onclick]"
)
MAX_CATALOG_ACTIONS = 40
MIN_LABEL_LENGTH = 2
MAX_LABEL_LENGTH = 120
SELECTOR_DEPTH = 5
MAX_CLASSES_PER_LEVEL = 2
DESCRIBE_TIMEOUT_MS = 1000

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ActionCandidate:
    selector: str
    label: str
    tag: str

    def to_payload(self) -> dict[str, str]:
        return {"selector": self.selector, "label": self.label, "tag": self.tag}


# Gathers the raw facts the Python side needs to decide visibility, label and
# selector for one element. The ancestor walk includes the element itself.
DESCRIBE_ELEMENT_JS = """
(el, maxDepth) => {
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const path = [];
    let node = el;
    let depth = 0;
    while (node && node.nodeType === Node.ELEMENT_NODE && depth < maxDepth) {
        const parent = node.parentElement;
        let sameTagCount = 1;
        let position = 1;
        if (parent) {
            const siblings = Array.from(parent.children).filter((c) => c.tagName === node.tagName);
            sameTagCount = siblings.length;
            position = siblings.indexOf(node) + 1;
        }
        path.push({
            tag: (node.tagName || "").toLowerCase(),
            classes: node.classList ? Array.from(node.classList) : [],
            sameTagCount,
            position,
        });
        node = parent;
        depth += 1;
    }
    return {
        tag: (el.tagName || "").toLowerCase(),
        id: el.id || "",
        isHtmlElement: el instanceof HTMLElement,
        ariaLabel: el.getAttribute("aria-label"),
        title: el.getAttribute("title"),
        value: typeof el.value === "string" ? el.value : null,
        text: el.innerText || el.textContent || "",
        display: style ? style.display : "",
        visibility: style ? style.visibility : "",
        opacity: style ? style.opacity : "1",
        width: rect.width,
        height: rect.height,
        path,
    };
}
"""


def is_rendered_visible(info: Optional[dict[str, Any]]) -> bool:
    """Visibility predicate shared by the catalog scan and the highlight controller."""

    if not info:
        return False
    if (info.get("display") or "") == "none":
        return False
    if (info.get("visibility") or "") == "hidden":
        return False
    opacity = info.get("opacity")
    if opacity not in (None, ""):
        try:
            if float(opacity) == 0:
                return False
        except (TypeError, ValueError):
            pass
    width = info.get("width") or 0
    height = info.get("height") or 0
    return width > 0 and height > 0


def collapse_whitespace(value: Optional[str]) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def derive_label(info: dict[str, Any]) -> str:
    for key in ("ariaLabel", "title", "value"):
        value = info.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    text = collapse_whitespace(info.get("text"))
    if text:
        return text
    return (info.get("tag") or "").lower()


def css_escape(ident: str) -> str:
    """Serialize a CSS identifier the way CSS.escape() does."""

    out: list[str] = []
    length = len(ident)
    for index, ch in enumerate(ident):
        code = ord(ch)
        if code == 0:
            out.append("\ufffd")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif index == 0 and ch.isdigit() and ch.isascii():
            out.append(f"\\{code:x} ")
        elif index == 1 and ch.isdigit() and ch.isascii() and ident[0] == "-":
            out.append(f"\\{code:x} ")
        elif index == 0 and ch == "-" and length == 1:
            out.append("\\-")
        elif code >= 0x80 or ch in "-_" or (ch.isascii() and ch.isalnum()):
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def build_selector(info: dict[str, Any]) -> str:
    element_id = info.get("id") or ""
    if element_id:
        return f"#{css_escape(element_id)}"

    parts: list[str] = []
    for level in (info.get("path") or [])[:SELECTOR_DEPTH]:
        tag = level.get("tag") or ""
        if not tag:
            break
        part = tag
        classes = [cls for cls in (level.get("classes") or []) if cls][:MAX_CLASSES_PER_LEVEL]
        if classes:
            part += "." + ".".join(css_escape(cls) for cls in classes)
        if (level.get("sameTagCount") or 1) > 1:
            part += f":nth-of-type({level.get('position') or 1})"
        parts.append(part)
    parts.reverse()
    return " > ".join(parts)


async def describe_element(handle, timeout_ms: int | None = None) -> Optional[dict[str, Any]]:
    try:
        if timeout_ms is None:
            return await handle.evaluate(DESCRIBE_ELEMENT_JS, SELECTOR_DEPTH)
        # Locators wait for their element; a node removed mid-scan should not stall the walk.
        return await handle.evaluate(DESCRIBE_ELEMENT_JS, SELECTOR_DEPTH, timeout=timeout_ms)
    except Exception as exc:
        logging.debug("describe_element: failed %r", exc)
        return None


# The catalog is rebuilt on every guided request because the document may have
# mutated since the last one. Scanning stops as soon as the cap is reached so
# large pages do not pay for a full walk.
async def scan_action_catalog(page: Page, max_actions: int = MAX_CATALOG_ACTIONS) -> List[ActionCandidate]:
    """
    Return the visible actionable controls of the page in document order,
    capped at ``max_actions`` and de-duplicated by selector.
    """

    actions: List[ActionCandidate] = []
    seen: Set[str] = set()

    try:
        locator = page.locator(ACTIONABLE_SELECTOR)
        count = await locator.count()
    except Exception as exc:
        logging.warning("catalog_scan_failed reason=%s", exc)
        return actions

    for i in range(count):
        if len(actions) >= max_actions:
            break
        info = await describe_element(locator.nth(i), timeout_ms=DESCRIBE_TIMEOUT_MS)
        if not info or not info.get("isHtmlElement", True):
            continue
        if not is_rendered_visible(info):
            continue

        label = derive_label(info)
        if not (MIN_LABEL_LENGTH <= len(label) <= MAX_LABEL_LENGTH):
            continue

        selector = build_selector(info)
        if not selector or selector in seen:
            continue
        seen.add(selector)

        actions.append(ActionCandidate(selector=selector, label=label, tag=(info.get("tag") or "").lower()))

    logging.debug("catalog_scan done scanned=%s accepted=%s", count, len(actions))
    return actions
