"""Pure-function URL builder for Threads search."""

from __future__ import annotations

from urllib.parse import quote, urlencode

from leadscout.models import SearchCriteria

_DEFAULT_BASE = "https://www.threads.net"

_FILTER_CODES: dict[str, str] = {
    "recent": "recent",
    "latest": "recent",
    "top": "",
}


def build_search_url(criteria: SearchCriteria, base_url: str = _DEFAULT_BASE) -> str:
    """Convert *criteria* into a fully-formed search URL.

    All keywords go into one query so the result page favours posts that
    mention several of them.
    """
    params: dict[str, str] = {
        "q": " ".join(k.strip() for k in criteria.keywords if k.strip()),
        "serp_type": "default",
    }
    code = _FILTER_CODES.get(criteria.search_filter.strip().lower(), "")
    if code:
        params["filter"] = code
    return f"{base_url.rstrip('/')}/search?{urlencode(params, quote_via=quote)}"
