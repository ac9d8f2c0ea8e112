from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from playwright.async_api import Page

from ..config import settings
from .dom_scanner import describe_element, is_rendered_visible

DEFAULT_NOTE = "Click here"
RESYNC_DELAYS_S = (0.25, 0.7)
SYNC_BINDING = "__pageguideHighlightSync"
OVERLAY_BOX_ID = "__pageguide_highlight_box__"
OVERLAY_TAG_ID = "__pageguide_highlight_tag__"
FRAME_PADDING = 6
TAG_OFFSET = 38
TAG_MARGIN = 8

# One layout binding per page; it forwards to whichever controller activated last.
_page_controllers: "weakref.WeakKeyDictionary[Any, HighlightController]" = weakref.WeakKeyDictionary()
_bound_pages: "weakref.WeakSet[Any]" = weakref.WeakSet()

APPLY_HIGHLIGHT_JS = """
(el) => {
    if (!document.getElementById("__pageguide_highlight_styles__")) {
        const style = document.createElement("style");
        style.id = "__pageguide_highlight_styles__";
        style.textContent = `
            @keyframes pageguidePulse {
                0% { box-shadow: 0 0 0 0 rgba(255, 106, 0, 0.9); }
                70% { box-shadow: 0 0 0 12px rgba(255, 106, 0, 0); }
                100% { box-shadow: 0 0 0 0 rgba(255, 106, 0, 0); }
            }
        `;
        document.documentElement.appendChild(style);
    }
    const restore = {
        outline: el.style.outline,
        outlineOffset: el.style.outlineOffset,
        boxShadow: el.style.boxShadow,
        transition: el.style.transition,
        animation: el.style.animation,
    };
    el.style.transition = "box-shadow 120ms ease, outline 120ms ease";
    el.style.outline = "4px solid #ff6a00";
    el.style.outlineOffset = "3px";
    el.style.boxShadow = "0 0 0 6px rgba(255, 106, 0, 0.35)";
    el.style.animation = "pageguidePulse 1.2s ease-out 6";
    return restore;
}
"""

RESTORE_STYLES_JS = """
(el, restore) => {
    for (const [key, value] of Object.entries(restore || {})) {
        el.style[key] = value;
    }
}
"""

SCROLL_INTO_VIEW_JS = """
(el) => el.scrollIntoView({ behavior: "smooth", block: "center", inline: "center" })
"""

PLACE_OVERLAY_JS = """
(geometry) => {
    let box = document.getElementById(geometry.boxId);
    if (!box) {
        box = document.createElement("div");
        box.id = geometry.boxId;
        box.style.position = "fixed";
        box.style.border = "4px solid #ff6a00";
        box.style.borderRadius = "10px";
        box.style.boxShadow = "0 0 0 9999px rgba(0, 0, 0, 0.2)";
        box.style.zIndex = "2147483647";
        box.style.pointerEvents = "none";
        document.documentElement.appendChild(box);
    }
    let tag = document.getElementById(geometry.tagId);
    if (!tag) {
        tag = document.createElement("div");
        tag.id = geometry.tagId;
        tag.style.position = "fixed";
        tag.style.background = "#ff6a00";
        tag.style.color = "#fff";
        tag.style.font = "700 14px/1.2 system-ui, -apple-system, Segoe UI, sans-serif";
        tag.style.padding = "8px 10px";
        tag.style.borderRadius = "8px";
        tag.style.zIndex = "2147483647";
        tag.style.pointerEvents = "none";
        document.documentElement.appendChild(tag);
    }
    box.style.left = `${geometry.frame.left}px`;
    box.style.top = `${geometry.frame.top}px`;
    box.style.width = `${geometry.frame.width}px`;
    box.style.height = `${geometry.frame.height}px`;
    tag.textContent = geometry.note;
    tag.style.left = `${geometry.tag.left}px`;
    tag.style.top = `${geometry.tag.top}px`;
}
"""

REMOVE_OVERLAY_JS = """
(ids) => {
    for (const id of ids) {
        const node = document.getElementById(id);
        if (node) node.remove();
    }
}
"""

# Capture-phase listeners so scrolls of inner containers also move the overlay.
# Calls are coalesced to one per animation frame.
ATTACH_LISTENERS_JS = """
(binding) => {
    const key = "__pageguideHighlightListener";
    if (window[key]) {
        window.removeEventListener("scroll", window[key], true);
        window.removeEventListener("resize", window[key], true);
    }
    let pending = false;
    const listener = () => {
        if (pending) return;
        pending = true;
        window.requestAnimationFrame(() => {
            pending = false;
            if (typeof window[binding] === "function") {
                Promise.resolve(window[binding]()).catch(() => {});
            }
        });
    };
    window[key] = listener;
    window.addEventListener("scroll", listener, true);
    window.addEventListener("resize", listener, true);
}
"""

DETACH_LISTENERS_JS = """
() => {
    const key = "__pageguideHighlightListener";
    if (window[key]) {
        window.removeEventListener("scroll", window[key], true);
        window.removeEventListener("resize", window[key], true);
        delete window[key];
    }
}
"""


@dataclass
class HighlightResult:
    ok: bool
    reason: Optional[str] = None
    message: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": self.ok}
        if self.reason:
            payload["reason"] = self.reason
        if self.message:
            payload["message"] = self.message
        return payload


@dataclass
class HighlightSession:
    generation: int = 0
    target: Any = None
    selector: Optional[str] = None
    note: str = ""
    restore_styles: Optional[dict[str, str]] = None
    overlay_placed: bool = False
    listeners_attached: bool = False
    expiry_task: Optional[asyncio.Task] = None
    resync_tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return self.target is not None

    def reset(self) -> None:
        self.target = None
        self.selector = None
        self.note = ""
        self.restore_styles = None
        self.overlay_placed = False
        self.listeners_attached = False
        self.expiry_task = None
        self.resync_tasks = []


def overlay_geometry(box: dict[str, float]) -> dict[str, dict[str, float]]:
    x = float(box.get("x", 0.0))
    y = float(box.get("y", 0.0))
    width = float(box.get("width", 0.0))
    height = float(box.get("height", 0.0))
    return {
        "frame": {
            "left": max(x - FRAME_PADDING, 0.0),
            "top": max(y - FRAME_PADDING, 0.0),
            "width": width + 2 * FRAME_PADDING,
            "height": height + 2 * FRAME_PADDING,
        },
        "tag": {
            "left": max(x, float(TAG_MARGIN)),
            "top": max(y - TAG_OFFSET, float(TAG_MARGIN)),
        },
    }


class HighlightController:
    """
    Paints a marker over one element and keeps it in place until cleared.

    The controller owns a single HighlightSession. Every transition runs under
    one asyncio lock, and activation always tears the previous session down
    first, so two overlays or two listener sets can never coexist.
    """

    def __init__(
        self,
        page: Page,
        timeout_s: float | None = None,
        resync_delays: Sequence[float] = RESYNC_DELAYS_S,
    ) -> None:
        self.page = page
        self.timeout_s = settings.highlight_timeout_s if timeout_s is None else timeout_s
        self.resync_delays = tuple(resync_delays)
        self.session = HighlightSession()
        self._lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self.session.active

    async def activate(self, selector: str, note: str = DEFAULT_NOTE) -> HighlightResult:
        target = await self._resolve(selector)
        if target is None:
            return HighlightResult(ok=False, reason="not_found", message="Target element not found on page")
        info = await describe_element(target)
        if info is not None and info.get("isHtmlElement") is False:
            return HighlightResult(ok=False, reason="not_found", message="Target is not an HTML element")
        if not is_rendered_visible(info):
            return HighlightResult(ok=False, reason="not_visible", message="Target element is not visible")

        await self._ensure_binding()
        _page_controllers[self.page] = self

        async with self._lock:
            await self._teardown()
            session = self.session
            session.generation += 1
            generation = session.generation
            try:
                session.restore_styles = await target.evaluate(APPLY_HIGHLIGHT_JS)
                session.target = target
                session.selector = selector
                session.note = note or DEFAULT_NOTE
                await target.evaluate(SCROLL_INTO_VIEW_JS)
                await self._place_overlay(session)
                await self.page.evaluate(ATTACH_LISTENERS_JS, SYNC_BINDING)
                session.listeners_attached = True
            except Exception as exc:
                logging.warning("highlight_activate_failed selector=%s reason=%s", selector, exc)
                await self._teardown()
                return HighlightResult(ok=False, reason="highlight_failed", message=str(exc))

            session.resync_tasks = [
                asyncio.create_task(self._resync_after(delay, generation)) for delay in self.resync_delays
            ]
            session.expiry_task = asyncio.create_task(self._expire_after(self.timeout_s, generation))

        logging.info("highlight_active selector=%s generation=%s", selector, generation)
        return HighlightResult(ok=True)

    async def clear(self) -> None:
        async with self._lock:
            await self._teardown()

    async def _resolve(self, selector: str):
        if not selector or not selector.strip():
            return None
        try:
            return await self.page.query_selector(selector)
        except Exception as exc:
            logging.debug("highlight_resolve_failed selector=%s reason=%s", selector, exc)
            return None

    async def _ensure_binding(self) -> None:
        if self.page in _bound_pages:
            return
        page_ref = weakref.ref(self.page)

        async def dispatch(*_args) -> None:
            page = page_ref()
            controller = _page_controllers.get(page) if page is not None else None
            if controller is not None:
                await controller._on_layout_change()

        try:
            await self.page.expose_function(SYNC_BINDING, dispatch)
        except Exception as exc:
            logging.debug("highlight_binding_unavailable reason=%s", exc)
        _bound_pages.add(self.page)

    async def _on_layout_change(self, *_args) -> None:
        await self._sync(self.session.generation)

    async def _place_overlay(self, session: HighlightSession) -> None:
        box = await session.target.bounding_box()
        if not box or box.get("width", 0) <= 0 or box.get("height", 0) <= 0:
            return
        geometry = overlay_geometry(box)
        await self.page.evaluate(
            PLACE_OVERLAY_JS,
            {**geometry, "note": session.note, "boxId": OVERLAY_BOX_ID, "tagId": OVERLAY_TAG_ID},
        )
        session.overlay_placed = True

    async def _sync(self, generation: int) -> None:
        async with self._lock:
            session = self.session
            if not session.active or session.generation != generation:
                return
            try:
                await self._place_overlay(session)
            except Exception as exc:
                logging.debug("highlight_sync_failed reason=%s", exc)

    async def _resync_after(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        await self._sync(generation)

    async def _expire_after(self, timeout_s: float, generation: int) -> None:
        await asyncio.sleep(timeout_s)
        async with self._lock:
            if self.session.active and self.session.generation == generation:
                logging.info("highlight_expired selector=%s", self.session.selector)
                await self._teardown()

    async def _teardown(self) -> None:
        session = self.session
        current = asyncio.current_task()
        for task in [session.expiry_task, *session.resync_tasks]:
            if task is not None and task is not current and not task.done():
                task.cancel()

        if session.overlay_placed:
            try:
                await self.page.evaluate(REMOVE_OVERLAY_JS, [OVERLAY_BOX_ID, OVERLAY_TAG_ID])
            except Exception as exc:
                logging.debug("highlight_overlay_remove_failed reason=%s", exc)
        if session.target is not None and session.restore_styles is not None:
            try:
                await session.target.evaluate(RESTORE_STYLES_JS, session.restore_styles)
            except Exception as exc:
                logging.debug("highlight_restore_failed reason=%s", exc)
        if session.listeners_attached:
            try:
                await self.page.evaluate(DETACH_LISTENERS_JS)
            except Exception as exc:
                logging.debug("highlight_detach_failed reason=%s", exc)

        session.reset()
