"""Request-scoped access seams: partner identity and the write token."""

import hmac
import logging

from fastapi import Header, HTTPException

from extranet.config import settings

logger = logging.getLogger(__name__)


async def get_partner_id(x_partner_id: int | None = Header(default=None)) -> int:
    """Partner the caller acts for, from the X-Partner-Id header."""
    if x_partner_id is None or x_partner_id <= 0:
        raise HTTPException(status_code=401, detail="Missing partner")
    return x_partner_id


async def require_write_token(authorization: str | None = Header(default=None)) -> None:
    """Writes need `Authorization: Bearer <EXTRANET_WRITE_TOKEN>`.

    With no token configured every write is refused.
    """
    expected = settings.extranet_write_token
    if not expected:
        logger.warning("Write refused: EXTRANET_WRITE_TOKEN is not configured")
        raise HTTPException(status_code=401, detail="Write operations require a Bearer token")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Write operations require a Bearer token")
