"""User-Agent and header-set rotation for anti-detection."""

import random
from typing import Dict, List, Optional


# Realistic user-agent strings
# Mix of Chrome, Firefox, Safari, and Edge on Windows, macOS and Linux
USER_AGENTS: List[str] = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    # Firefox on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) Gecko/20100101 Firefox/132.0",
    # Firefox on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:133.0) Gecko/20100101 Firefox/133.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.0 Safari/605.1.15",
    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36 Edg/130.0.0.0",
    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
]

ACCEPT_LANGUAGES: List[str] = [
    "en-IN,en;q=0.9",
    "en-US,en;q=0.9",
    "en-GB,en;q=0.9",
    "en-IN,en-GB;q=0.9,en-US;q=0.8,en;q=0.7",
    "hi-IN,hi;q=0.9,en-IN;q=0.8,en;q=0.7",
]

_HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"


def browser_family(user_agent: str) -> str:
    """Classify a user-agent string as chrome, edge, firefox or safari."""
    if "Edg/" in user_agent:
        return "edge"
    if "Firefox/" in user_agent:
        return "firefox"
    if "Chrome/" in user_agent:
        return "chrome"
    return "safari"


def _client_hint_platform(user_agent: str) -> str:
    if "Macintosh" in user_agent:
        return '"macOS"'
    if "Linux" in user_agent:
        return '"Linux"'
    return '"Windows"'


class IdentityPool:
    """Supplies rotated request identities (a full header set per request).

    Consecutive calls never reuse the previous user agent, so two requests
    in a row never present the exact same fingerprint. Headers are kept
    consistent with the chosen browser family (Chromium browsers send
    client hints, Firefox and Safari do not).
    """

    def __init__(
        self,
        user_agents: Optional[List[str]] = None,
        languages: Optional[List[str]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.user_agents = list(user_agents or USER_AGENTS)
        if not self.user_agents:
            raise ValueError("IdentityPool needs at least one user agent")
        self.languages = list(languages or ACCEPT_LANGUAGES)
        self._rng = rng or random.Random()
        self._last_user_agent: Optional[str] = None

    def next_user_agent(self) -> str:
        candidates = [ua for ua in self.user_agents if ua != self._last_user_agent]
        user_agent = self._rng.choice(candidates or self.user_agents)
        self._last_user_agent = user_agent
        return user_agent

    def next_headers(self, referer: Optional[str] = None) -> Dict[str, str]:
        """Build the header set for the next request."""
        user_agent = self.next_user_agent()
        headers = {
            "User-Agent": user_agent,
            "Accept": _HTML_ACCEPT,
            "Accept-Language": self._rng.choice(self.languages),
            "Accept-Encoding": "gzip, deflate, br",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
            "Cache-Control": "max-age=0",
        }

        family = browser_family(user_agent)
        if family in ("chrome", "edge"):
            headers.update({
                "Sec-Fetch-Dest": "document",
                "Sec-Fetch-Mode": "navigate",
                "Sec-Fetch-Site": "same-origin" if referer else "none",
                "Sec-Fetch-User": "?1",
                "Sec-Ch-Ua-Mobile": "?0",
                "Sec-Ch-Ua-Platform": _client_hint_platform(user_agent),
            })
        else:
            headers["DNT"] = "1"

        if referer:
            headers["Referer"] = referer
        return headers
