from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set
from urllib.parse import urlsplit

import azure.functions as func

from shared.config import get_setting


# Accept both legacy Azure settings (CORS/CORSCredentials) and the newer CORS_ORIGIN flag.
def _raw_origins() -> str:
    return (
        get_setting("ALLOWED_ORIGINS")
        or get_setting("CORS")
        or get_setting("CORS_ORIGIN")
        or get_setting("CORS_ALLOWED_ORIGINS")
        or "*"
    )


def _parse_origins(raw: str) -> List[str]:
    """Split comma-separated origins, honoring a wildcard if present."""
    origins: List[str] = []
    for origin in raw.split(","):
        cleaned = origin.strip()
        if not cleaned:
            continue
        if cleaned == "*":
            return ["*"]
        origins.append(cleaned)
    return origins


def _env_flag(names: Iterable[str], default: bool = False) -> bool:
    """Return the first matching boolean-like setting value."""
    truthy = {"1", "true", "yes", "y"}
    falsy = {"0", "false", "no", "n"}
    for name in names:
        raw = get_setting(name)
        if raw is None:
            continue
        lowered = raw.lower()
        if lowered in truthy:
            return True
        if lowered in falsy:
            return False
    return default


ALLOWED_ORIGINS = _parse_origins(_raw_origins())
ALLOW_CREDENTIALS = _env_flag(["CORS_ALLOW_CREDENTIALS", "CORS_CREDENTIALS", "CORSCredentials"])
ALLOW_LOCALHOST = _env_flag(["CORS_ALLOW_LOCALHOST"], default=True)
DEFAULT_ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
    "x-user-name",
]


def _split_origin(value: str):
    """(scheme, host, port) of an origin or a host-only entry; scheme is None for host-only."""
    cleaned = value.strip().rstrip("/").lower()
    if "://" not in cleaned:
        host, _, port = cleaned.partition(":")
        return None, host, port or None
    parts = urlsplit(cleaned)
    return parts.scheme, parts.hostname or "", str(parts.port) if parts.port else None


def _origin_matches(origin: Optional[str], allowed: str) -> bool:
    """
    Compare a request origin with one configured entry. Entries may omit the
    scheme (matching http and https) and may start with ``*.`` for subdomains.
    """
    if not origin:
        return False
    scheme, host, port = _split_origin(origin)
    allowed_scheme, allowed_host, allowed_port = _split_origin(allowed)
    if allowed_scheme and allowed_scheme != scheme:
        return False
    if allowed_port and allowed_port != port:
        return False
    if allowed_host.startswith("*."):
        suffix = allowed_host[1:]
        return host.endswith(suffix) and host != suffix.lstrip(".")
    return host == allowed_host


def _is_local_origin(origin: Optional[str]) -> bool:
    if not origin:
        return False
    _, host, _ = _split_origin(origin)
    return host in ("localhost", "127.0.0.1")


def _allow_headers(req: func.HttpRequest) -> str:
    """Known application headers plus any extra headers requested by the browser preflight."""
    requested = req.headers.get("Access-Control-Request-Headers", "")
    merged: Dict[str, str] = {}
    for name in DEFAULT_ALLOWED_HEADERS:
        merged[name.lower()] = name
    for name in requested.split(","):
        cleaned = name.strip()
        if cleaned:
            merged.setdefault(cleaned.lower(), cleaned)
    return ", ".join(merged.values())


def build_cors_headers(req: func.HttpRequest, allowed_methods: Iterable[str]) -> Dict[str, str]:
    """Return CORS headers for the request origin if allowed."""
    origin = req.headers.get("origin") or req.headers.get("Origin")
    seen: Set[str] = set()
    methods_list: List[str] = []
    for method in allowed_methods:
        normalized = method.strip().upper()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        methods_list.append(normalized)
    if "OPTIONS" not in seen:
        methods_list.append("OPTIONS")

    headers: Dict[str, str] = {"Vary": "Origin"}
    allow_all = "*" in ALLOWED_ORIGINS or not ALLOWED_ORIGINS
    origin_allowed = allow_all or any(_origin_matches(origin, entry) for entry in ALLOWED_ORIGINS)
    if not origin_allowed and ALLOW_LOCALHOST and _is_local_origin(origin):
        origin_allowed = True

    if origin_allowed:
        # When credentials are allowed, echo the caller's origin instead of "*".
        headers.update(
            {
                "Access-Control-Allow-Origin": origin if (ALLOW_CREDENTIALS and origin) else ("*" if allow_all else (origin or "*")),
                "Access-Control-Allow-Methods": ", ".join(methods_list),
                "Access-Control-Allow-Headers": _allow_headers(req),
            }
        )
        if ALLOW_CREDENTIALS:
            headers["Access-Control-Allow-Credentials"] = "true"
    return headers
