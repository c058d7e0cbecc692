"""Static access-code gate and webhook secret checks for FastAPI."""

import secrets
from typing import Optional

from fastapi import Header, HTTPException

from instalens.config import settings

ACCESS_CODE_HEADER = "X-Access-Code"


def code_matches(supplied: Optional[str], expected: Optional[str]) -> bool:
    if not expected:
        return True
    if not supplied:
        return False
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


async def verify_access_code(
    x_access_code: Optional[str] = Header(None, alias=ACCESS_CODE_HEADER),
) -> None:
    """Require the access code header when ACCESS_CODE is configured."""
    if not code_matches(x_access_code, settings.access_code):
        raise HTTPException(status_code=401, detail="Missing or invalid access code")


def verify_webhook_secret(supplied: Optional[str]) -> None:
    if not code_matches(supplied, settings.webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")
