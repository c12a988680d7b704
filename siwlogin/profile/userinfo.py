"""
User profile retrieval from the identity provider's userinfo endpoint.

Profile data is display-only, so every failure degrades to an empty mapping
instead of an error page.
"""

import logging
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


async def fetch_profile(
    access_token: Optional[str],
    issuer: str,
    timeout: float = 10.0,
) -> Dict[str, str]:
    """
    Fetch the authenticated user's profile attributes.

    Args:
        access_token: Access token stored in the session
        issuer: Identity provider base URL
        timeout: Request timeout in seconds

    Returns:
        Mapping of profile attribute names to string values; empty when the
        token is missing or the provider call fails. Non-string attributes
        (booleans, timestamps, nested objects) are left out.
    """
    if not access_token:
        return {}

    userinfo_endpoint = f"{issuer.rstrip('/')}/oauth2/v1/userinfo"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                userinfo_endpoint,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=timeout,
            )
    except httpx.HTTPError as e:
        logger.warning(f"Userinfo request failed: {e}")
        return {}

    if not response.is_success:
        logger.warning(
            "Userinfo request rejected by identity provider",
            extra={"status_code": response.status_code},
        )
        return {}

    try:
        data = response.json()
    except ValueError:
        logger.warning("Userinfo response is not valid JSON")
        return {}

    if not isinstance(data, dict):
        logger.warning("Userinfo response is not a JSON object")
        return {}

    return {key: value for key, value in data.items() if isinstance(value, str)}
