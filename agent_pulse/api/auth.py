"""
Scheduler authentication for the trigger endpoints.

A request is accepted when the trusted cron header is present (set by the
hosting platform's scheduler) or when X-API-KEY matches an internal key.
"""

import structlog
from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from agent_pulse.config.settings import get_settings

logger = structlog.get_logger(__name__)

# API key header scheme
api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


def _valid_keys(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


async def verify_scheduler(
    request: Request,
    api_key: str | None = Security(api_key_header),
) -> str:
    """
    Authorize a trigger request.

    Returns:
        How the caller was authorized: "cron", "api-key", or "dev-mode".

    Raises:
        HTTPException: 401 when neither the cron header nor a valid key is present.
    """
    settings = get_settings()

    if request.headers.get(settings.trusted_cron_header):
        return "cron"

    valid_keys = _valid_keys(settings.internal_api_keys)

    # If no API keys configured, allow all requests (dev mode)
    if not valid_keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )

    if api_key not in valid_keys:
        logger.warning("Rejected trigger request", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return "api-key"
