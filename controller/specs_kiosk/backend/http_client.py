"""HTTP client for the avatar vendor's session-token endpoint."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from ..errors import AuthError

logger = logging.getLogger(__name__)


class AvatarAuthClient:
    """Thin wrapper around the avatar authorization REST API."""

    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=self.settings.avatar_api_url,
            timeout=self.settings.auth_timeout_s,
            transport=transport,
        )
        self._closed = False

    async def issue_session_token(self, persona_config: Dict[str, Any]) -> str:
        """Exchange the API key and persona configuration for a short-lived session token."""
        headers = {"Authorization": f"Bearer {self.settings.avatar_api_key}"}
        try:
            logger.info("avatar.issue_session_token: requesting token for persona '%s'", persona_config.get("name"))
            response = await self._client.post(
                "/auth/session-token",
                json={"personaConfig": persona_config},
                headers=headers,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error("avatar.issue_session_token: request timeout")
            raise AuthError(log_message="session token request timed out") from e
        except httpx.NetworkError as e:
            logger.error("avatar.issue_session_token: network error - %s", e)
            raise AuthError(log_message=f"network error: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error("avatar.issue_session_token: HTTP %d - %s", e.response.status_code, e.response.text)
            raise AuthError(
                log_message=f"Session token error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("avatar.issue_session_token: request failed - %s", e)
            raise AuthError(log_message=f"session token request failed: {e}") from e
        except ValueError as e:
            logger.error("avatar.issue_session_token: invalid JSON response")
            raise AuthError(log_message="session token response is not JSON") from e

        token = data.get("sessionToken") if isinstance(data, dict) else None
        if not token:
            logger.error("avatar.issue_session_token: response missing sessionToken %s", data)
            raise AuthError(log_message="session token response missing sessionToken")
        return token

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Error closing HTTP client: %s", e)
