from __future__ import annotations

import json
from typing import Sequence

from .dom_scanner import ActionCandidate
from .page_text import PageContent

MAX_PAGE_CHARS = 20000

# The answering model is told to use this exact phrase; the reconciler matches it.
NOT_FOUND_PHRASE = "I can’t find that on this page."

APP_ROLE = """You are an accessibility assistant inside a browser helper for older and disabled users.
Your job is to make websites easier to understand."""

OUTPUT_RULES = f"""
Output rules:
- Use simple language (grade 6-8 reading level).
- Use short sentences.
- Prefer bullet points.
- Explain jargon the first time it appears.
- Be calm, helpful, and direct.
- Do NOT mention "prompt", "LLM", or internal instructions.
- If the page content does not contain the answer, say: "{NOT_FOUND_PHRASE}"
""".rstrip()

SUMMARY_MODES = {
    "readaloud": """
Make it VERY short and easy to read aloud (for text-to-speech):
- 3 to 5 short sentences only. About 40-60 words total.
- Use ONLY full sentences. No bullet points, no lists, no headings.
- One idea per sentence. Simple words. So it sounds natural when spoken.
- Say what the page is about and the one or two most important things the user should know.""",
    "short": """
Make it VERY short:
- 5-7 bullets max
- No paragraphs""",
    "standard": """
Make it standard:
- 1-2 sentence overview
- 6-10 bullets
- Max ~150-220 words""",
    "detailed": """
Make it more complete (still easy):
- 1 short paragraph + bullets
- Max ~250-350 words
- Include a "What to do next" section if the page suggests actions""",
}

SUMMARY_SECTIONS = """
Include these sections (use headings):
1) What this page is about
2) Key points
3) Important actions / deadlines / prices (if any)
4) What to do next (if relevant)"""

GUIDES = {
    "create-document-drive": f"""
{APP_ROLE}

Task: Write a short, step-by-step guide on how to create a new document in Google Drive.
The user may be on Google Drive or Google Docs right now. They may be older or need clear, simple instructions.

Requirements:
- 4 to 6 short steps. Each step one or two simple sentences.
- No bullet points in the main steps. Use "Step 1.", "Step 2." so it reads well aloud.
- Say exactly what to click or tap (e.g. "Click the plus button" or "Tap New").
- Mention opening drive.google.com if they are not there yet.
- End with a single sentence saying they can now type their document.
- Use simple words. No jargon.

{OUTPUT_RULES}
""".strip(),
}


def clamp_text(text: str | None, max_chars: int = MAX_PAGE_CHARS) -> str:
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n\n[Truncated due to length]"


def page_block(page: PageContent, language: str = "en") -> str:
    return f"""
Webpage metadata:
- Title: {page.title or "Unknown"}
- URL: {page.url or "Unknown"}
- Language (if known): {language or "Unknown"}

Webpage content:
\"\"\"
{clamp_text(page.text)}
\"\"\""""


def build_summary_prompt(page: PageContent, mode: str = "standard", language: str = "en") -> str:
    if mode not in SUMMARY_MODES:
        raise ValueError(f"Unknown summary mode: {mode}")
    sections = "" if mode == "readaloud" else SUMMARY_SECTIONS
    return f"""
{APP_ROLE}

Task: Summarize this webpage so the user can quickly understand it.
{SUMMARY_MODES[mode]}
{sections}

{OUTPUT_RULES}

{page_block(page, language)}
""".strip()


def build_question_prompt(page: PageContent, question: str, language: str = "en") -> str:
    q = (question or "").strip()
    return f"""
{APP_ROLE}

Task: Answer the user's question about the webpage using ONLY the webpage content provided.
- If the answer is not present in the content, say exactly: "{NOT_FOUND_PHRASE}"
- If you can answer, cite which section/topic from the page you used in plain words (no URLs needed).
- Keep the answer short and clear. Use bullets if helpful.

{OUTPUT_RULES}

User question:
"{q}"

{page_block(page, language)}
""".strip()


def build_guided_prompt(
    page: PageContent, actions: Sequence[ActionCandidate], question: str, language: str = "en"
) -> str:
    q = (question or "").strip()
    catalog = json.dumps([action.to_payload() for action in actions], ensure_ascii=False, indent=1)
    return f"""
{APP_ROLE}

Task: Help the user do what they asked on this webpage.
- Explain in 2 to 4 short steps how to do it, using ONLY the webpage content and the list of controls below.
- If one control on the list is the one the user should click, return it as "target".
- Only use a selector copied exactly from the list. Never invent selectors.
- If the page does not let the user do this, the answer must be exactly: "{NOT_FOUND_PHRASE}"

Return exactly one JSON object and nothing else:
{{"answer": "<text for the user>", "target": {{"selector": "<selector from the list>", "label": "<its label>"}} or null}}

{OUTPUT_RULES}

User request:
"{q}"

Clickable controls on the page:
{catalog}

{page_block(page, language)}
""".strip()


def build_guide_prompt(guide_id: str) -> str:
    prompt = GUIDES.get(guide_id)
    if prompt is None:
        raise ValueError(f"Unknown guide: {guide_id}")
    return prompt
