"""
Cleaning helpers for untrusted text, URLs and timestamps.

They return None for anything they cannot accept; callers treat
None as "field absent", never as an error.
"""

from __future__ import annotations

import ipaddress
import re
from datetime import datetime, timezone
from urllib.parse import quote, urlsplit, urlunsplit

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITY_RE = re.compile(r"&[#a-zA-Z0-9]+;")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_URL_STRIP_RE = re.compile(r"[\t\r\n]")

# Decoded in this order; anything else entity-like is dropped.
_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&nbsp;", " "),
)

_DEFAULT_PORTS = {"http": 80, "https": 443}

# Code points that can never appear in a hostname.
_FORBIDDEN_HOST_RE = re.compile(r"[\x00-\x20#%/:<>?@\[\\\]^|\x7f]")

# Characters left as-is when percent-encoding each URL component.
_USERINFO_SAFE = "%!$&'()*+,;="
_PATH_SAFE = "/%:@!$&'()*+,;=[]|^"
_QUERY_SAFE = "/?%:@!$&()*+,;=[]|^{}`\\"
_FRAGMENT_SAFE = "/?%:@!$&'()*+,;=[]|^{}#\\"


def sanitize_text(value: object) -> str | None:
    if value is None or not isinstance(value, str) or not value:
        return None
    s = _TAG_RE.sub("", value)
    for entity, char in _ENTITIES:
        s = s.replace(entity, char)
    s = _ENTITY_RE.sub("", s)
    s = _CONTROL_RE.sub("", s)
    s = s.strip()
    return s or None


def _canonical_host(host: str) -> str | None:
    if ":" in host:
        try:
            return f"[{ipaddress.IPv6Address(host).compressed}]"
        except ValueError:
            return None
    if _FORBIDDEN_HOST_RE.search(host):
        return None
    try:
        ascii_host = host.encode("idna").decode("ascii")
    except UnicodeError:
        return None
    return ascii_host.lower() or None


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")
    out: list[str] = []
    for seg in segments[1:]:
        if seg == ".":
            continue
        if seg == "..":
            if out:
                out.pop()
            continue
        out.append(seg)
    res = "/" + "/".join(out)
    if segments[-1] in (".", "..") and not res.endswith("/"):
        res += "/"
    return res


def sanitize_url(value: object) -> str | None:
    """
    Canonical http(s) form of `value`, or None.

    Host is lowercased (IDNA for non-ASCII), default ports are dropped, dot
    segments are resolved and unsafe characters are percent-encoded, so
    equivalent spellings serialize to the same string.
    """
    if value is None or not isinstance(value, str):
        return None
    raw = _URL_STRIP_RE.sub("", value.strip())
    if not raw:
        return None
    try:
        parts = urlsplit(raw)
        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS:
            return None
        if not parts.hostname:
            return None
        netloc = _canonical_host(parts.hostname)
        if netloc is None:
            return None
        # Raises ValueError on a malformed port.
        port = parts.port
        if port is not None and port != _DEFAULT_PORTS[scheme]:
            netloc = f"{netloc}:{port}"
        if parts.username:
            userinfo = quote(parts.username, safe=_USERINFO_SAFE)
            if parts.password:
                userinfo = f"{userinfo}:{quote(parts.password, safe=_USERINFO_SAFE)}"
            netloc = f"{userinfo}@{netloc}"
        path = _remove_dot_segments(parts.path.replace("\\", "/") or "/")
        url = urlunsplit(
            (
                scheme,
                netloc,
                quote(path, safe=_PATH_SAFE),
                quote(parts.query, safe=_QUERY_SAFE),
                quote(parts.fragment, safe=_FRAGMENT_SAFE),
            )
        )
    except ValueError:
        return None
    if "javascript:" in url.lower():
        return None
    return url


def parse_timestamp(value: object) -> float | None:
    """
    Epoch seconds from an epoch number or an ISO-8601 string (naive means UTC).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def truncate(value: str | None, limit: int = 50) -> str:
    return str(value or "")[: max(0, int(limit))]
