# =============================================================================
# Baidu ERNIE (Wenxin) Provider
# =============================================================================
#
# Baidu authenticates with an access token passed as a query parameter.
# The token comes from the configured api_key:
#   - "AK:SK"  → exchanged once through the OAuth client-credentials
#                endpoint, then cached for the provider's lifetime
#   - anything else → used as the access token as-is
#
# Answer: the `result` field. Errors arrive as HTTP 200 bodies carrying
# `error_code` / `error_msg`, so those are checked explicitly.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import BaseModel, ValidationError

from qa_service.providers.base import HTTPProvider, ProviderConfig
from qa_service.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://aip.baidubce.com/oauth/2.0/token"


class BaiduResponse(BaseModel):
    result: str | None = None
    error_code: int | None = None
    error_msg: str | None = None


class BaiduTokenResponse(BaseModel):
    access_token: str | None = None
    expires_in: int | None = None
    error: str | None = None
    error_description: str | None = None


class BaiduProvider(HTTPProvider):
    DEFAULT_URL = (
        "https://aip.baidubce.com/rpc/2.0/ai_custom/v1/wenxinworkshop/chat/eb-instant"
    )
    DISPLAY_NAME = "Baidu ERNIE"

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config, transport)
        self._access_token: str | None = None
        self._token_lock = asyncio.Lock()

    async def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token

        async with self._token_lock:
            if self._access_token:
                return self._access_token

            if ":" not in self.config.api_key:
                self._access_token = self.config.api_key
                return self._access_token

            client_id, client_secret = self.config.api_key.split(":", 1)
            data = await self._post_json(
                TOKEN_URL,
                payload={},
                params={
                    "grant_type": "client_credentials",
                    "client_id": client_id,
                    "client_secret": client_secret,
                },
            )
            try:
                token = BaiduTokenResponse.model_validate(data)
            except ValidationError as e:
                raise UpstreamError("Baidu token response unparsable", provider=self.name) from e
            if not token.access_token:
                raise UpstreamError(
                    f"Baidu token request failed: {token.error_description or token.error}",
                    provider=self.name,
                )
            logger.info("Obtained Baidu access token (expires_in=%s)", token.expires_in)
            self._access_token = token.access_token
            return self._access_token

    async def ask(self, question: str) -> str:
        access_token = await self._get_access_token()
        data = await self._post_json(
            self.config.api_url,
            {"messages": [{"role": "user", "content": question}]},
            headers={"Content-Type": "application/json"},
            params={"access_token": access_token},
        )

        try:
            response = BaiduResponse.model_validate(data)
        except ValidationError as e:
            raise UpstreamError("Baidu returned an unparsable body", provider=self.name) from e

        if response.error_code:
            raise UpstreamError(
                f"Baidu API error {response.error_code}: {response.error_msg}",
                provider=self.name,
            )
        if response.result is None:
            raise UpstreamError("Baidu response has no result", provider=self.name)
        return response.result

    async def check_connection(self) -> None:
        await self._get_access_token()
        logger.info("Baidu ERNIE connection check passed")
