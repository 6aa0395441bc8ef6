from __future__ import annotations

import re
from urllib.parse import urlparse, urlsplit, urlunsplit


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def extract_domain(url: str) -> str:
    """Host without a leading ``www.``, lowercased."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def is_on_domain(url: str, domain: str) -> bool:
    host = extract_domain(url)
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


def normalize_url(url: str) -> str:
    """Canonical form used for the visited set: no fragment or trailing slash."""
    parsed = urlsplit(url.strip())
    path = parsed.path.rstrip("/") or "/"
    return urlunsplit((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.query, ""))


def name_tokens(name: str) -> list[str]:
    return [token for token in re.findall(r"[a-z0-9]+", name.lower()) if len(token) > 1]
