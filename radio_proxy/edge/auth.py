"""
Authorization for operator and scheduler triggered endpoints.
"""

import hmac
import logging
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


def is_authorized(
    headers: Mapping[str, str],
    secret: Optional[str],
    scheduler_user_agent: Optional[str] = None,
) -> bool:
    """
    Check whether a prewarm/refresh request may proceed.

    Allowed when no secret is configured, when the request carries
    ``Authorization: Bearer <secret>``, or when it comes from the scheduler
    (User-Agent equal to scheduler_user_agent).

    Args:
        headers: Request headers (case-insensitive mapping)
        secret: Shared bearer secret, empty/None if not configured
        scheduler_user_agent: User-Agent the scheduler sends

    Returns:
        True if authorized
    """
    if not secret:
        return True

    auth_header = headers.get("Authorization", "")
    is_valid_secret = hmac.compare_digest(
        auth_header.encode(), f"Bearer {secret}".encode()
    )

    user_agent = headers.get("User-Agent", "")
    is_scheduler = bool(scheduler_user_agent) and user_agent == scheduler_user_agent

    if not (is_valid_secret or is_scheduler):
        logger.warning(
            f"Unauthorized request: user_agent={user_agent!r}, "
            f"has_auth_header={bool(auth_header)}"
        )
        return False

    logger.debug(f"Authorized: scheduler={is_scheduler}, secret={is_valid_secret}")
    return True
