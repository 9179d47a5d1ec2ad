# security.py
from typing import Dict, Optional, Sequence
from urllib.parse import urlparse

ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type"
ALLOWED_METHODS = "POST, OPTIONS"


def is_origin_allowed(
    origin: Optional[str],
    allowed: Sequence[str],
    preview_suffix: Optional[str] = None,
    preview_project: Optional[str] = None,
) -> bool:
    """
    Origin policy for browser callers.

    No Origin header means the caller is not a browser CORS request. Preview
    deployments pass when the host ends with ``preview_suffix`` and also
    contains ``preview_project``.
    """
    if not origin:
        return True
    if "*" in allowed or origin in allowed:
        return True

    if preview_suffix and preview_project:
        host = (urlparse(origin).hostname or "").lower()
        if host.endswith(preview_suffix.lower()) and preview_project.lower() in host:
            return True

    return False


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def cors_headers(origin: Optional[str]) -> Dict[str, str]:
    headers = {
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Vary": "Origin",
    }
    if origin:
        headers["Access-Control-Allow-Origin"] = origin
    return headers
