"""
Bearer token authentication for the billing and insights API.

Each API token belongs to exactly one meter. The mapping comes from the
METER_TOKENS setting (``token:meter_id`` pairs separated by commas). Tokens
are compared with secrets.compare_digest so lookup time does not leak how
much of a token matched.

CHANGELOG:
- 2026-10-17: Add require_meter for meter-scoped routes (STORY-029)
- 2026-10-16: Initial creation (STORY-028)

TODO:
- None
"""

import logging
import secrets

from fastapi import HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


def parse_meter_tokens(raw: str) -> dict[str, str]:
    """Parse METER_TOKENS into a token -> meter_id mapping.

    Entries missing the colon, or with an empty token or meter id, are
    skipped with a warning. Whitespace around both halves is ignored.

    Args:
        raw: Comma-separated ``token:meter_id`` pairs.

    Returns:
        dict[str, str]: Mapping of token -> meter_id.
    """
    token_map: dict[str, str] = {}
    for position, entry in enumerate((raw or "").split(",")):
        token, sep, meter_id = entry.strip().partition(":")
        token, meter_id = token.strip(), meter_id.strip()
        if not sep or not token or not meter_id:
            if entry.strip():
                logger.warning(
                    "Skipping malformed METER_TOKENS entry at position %d", position
                )
            continue
        token_map[token] = meter_id
    return token_map


def verify_bearer_token(token: str, token_map: dict[str, str]) -> str | None:
    """Return the meter id owning ``token``, or None if it is unknown.

    Every registered token is compared so the loop length does not depend
    on where a match sits.
    """
    if not token:
        return None

    matched: str | None = None
    presented = token.encode("utf-8")
    for registered, meter_id in token_map.items():
        if secrets.compare_digest(presented, registered.encode("utf-8")):
            matched = meter_id
    return matched


class BearerAuth:
    """FastAPI dependency that resolves a bearer token to a meter id.

    Attributes:
        token_map: Mapping of valid token -> meter_id.
        scheme: HTTPBearer scheme, used for header parsing and OpenAPI docs.
    """

    def __init__(self, token_map: dict[str, str]) -> None:
        self.token_map = token_map
        self.scheme = HTTPBearer(auto_error=False)

    async def verify(self, request: Request) -> str:
        """Return the meter id of the caller.

        Raises:
            HTTPException: 401 if the header is missing or the token unknown.
        """
        credentials: HTTPAuthorizationCredentials | None = await self.scheme(request)
        if credentials is None:
            raise HTTPException(
                status_code=401,
                detail="Missing authorization credentials.",
                headers=_UNAUTHORIZED_HEADERS,
            )

        meter_id = verify_bearer_token(credentials.credentials, self.token_map)
        if meter_id is None:
            raise HTTPException(
                status_code=401,
                detail="Invalid or expired token.",
                headers=_UNAUTHORIZED_HEADERS,
            )
        return meter_id

    async def require_meter(self, request: Request, meter_id: str) -> str:
        """Verify the caller and check it owns ``meter_id``.

        Raises:
            HTTPException: 401 as for :meth:`verify`; 403 if the token
                belongs to another meter.
        """
        caller = await self.verify(request)
        if caller != meter_id:
            logger.warning("Meter %s attempted to read meter %s", caller, meter_id)
            raise HTTPException(
                status_code=403,
                detail="Meter ID does not match authenticated meter.",
            )
        return caller
