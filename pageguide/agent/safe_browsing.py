"""URL reputation lookups against the Google Safe Browsing v4 API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..config import settings

API_ENDPOINT = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
CLIENT_ID = "pageguide"
CLIENT_VERSION = "1.0.0"
THREAT_TYPES = [
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION",
]
UNCHECKED_PREFIXES = ("chrome://", "chrome-extension://", "edge://", "file://", "about:", "data:")

THREAT_DESCRIPTIONS = {
    "MALWARE": "This site may install malicious software on your computer",
    "SOCIAL_ENGINEERING": "This site may be deceptive (phishing)",
    "UNWANTED_SOFTWARE": "This site may contain unwanted software",
    "POTENTIALLY_HARMFUL_APPLICATION": "This site may contain harmful applications",
}


class SafeBrowsingError(RuntimeError):
    pass


@dataclass
class Threat:
    threat_type: str
    platform_type: str
    url: str

    @property
    def description(self) -> str:
        return describe_threat(self.threat_type)

    def to_payload(self) -> dict[str, str]:
        return {
            "threat_type": self.threat_type,
            "platform_type": self.platform_type,
            "url": self.url,
            "description": self.description,
        }


@dataclass
class UrlVerdict:
    safe: bool
    threats: list[Threat] = field(default_factory=list)


def describe_threat(threat_type: str) -> str:
    return THREAT_DESCRIPTIONS.get(threat_type, "This site may be dangerous")


def is_safe_browsing_configured() -> bool:
    return bool(settings.safe_browsing_api_key)


def _request_body(url: str) -> dict:
    return {
        "client": {"clientId": CLIENT_ID, "clientVersion": CLIENT_VERSION},
        "threatInfo": {
            "threatTypes": THREAT_TYPES,
            "platformTypes": ["ANY_PLATFORM"],
            "threatEntryTypes": ["URL"],
            "threatEntries": [{"url": url}],
        },
    }


async def check_url(
    url: str,
    *,
    api_key: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> UrlVerdict:
    """
    Look ``url`` up in Safe Browsing. Missing configuration and browser-internal
    URLs are treated as safe; HTTP failures raise SafeBrowsingError.
    """

    api_key = api_key or settings.safe_browsing_api_key
    if not api_key:
        logging.debug("safe_browsing_skipped reason=not_configured")
        return UrlVerdict(safe=True)
    if not url or url.startswith(UNCHECKED_PREFIXES):
        return UrlVerdict(safe=True)

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await http.post(API_ENDPOINT, params={"key": api_key}, json=_request_body(url))
    except httpx.HTTPError as exc:
        raise SafeBrowsingError(f"Safe Browsing request failed: {exc}") from exc
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code != 200:
        raise SafeBrowsingError(f"Safe Browsing API error: {response.status_code} - {response.text}")

    matches = (response.json() or {}).get("matches") or []
    if not matches:
        return UrlVerdict(safe=True)

    threats = [
        Threat(
            threat_type=match.get("threatType", ""),
            platform_type=match.get("platformType", ""),
            url=(match.get("threat") or {}).get("url") or url,
        )
        for match in matches
    ]
    logging.info("safe_browsing_threats url=%s types=%s", url, [t.threat_type for t in threats])
    return UrlVerdict(safe=False, threats=threats)
