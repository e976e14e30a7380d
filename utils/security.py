"""
Admin API key check for stock endpoints.
"""

import hmac
from typing import Optional

from config import settings
from exceptions import AuthorizationError


def verify_admin_key(api_key: Optional[str], expected: Optional[str] = None) -> None:
    """
    Require the configured admin key.

    The check is disabled when no key is configured (local development).

    Raises:
        AuthorizationError: If the key is missing or wrong
    """
    expected = expected if expected is not None else settings.admin_api_key
    if not expected:
        return
    # compare_digest rejects non-ASCII str, so compare encoded bytes
    if not api_key or not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        raise AuthorizationError("Not authorized")
