"""
Replicate SDK transport for official models.

`Client.run` returns whatever the model emits: a URL string, a `FileOutput`
(an object with `.url`), or a list of either. The raw value is passed back as
is and normalised by the gateway.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
import replicate
from replicate.exceptions import ReplicateError

from adapt_api.services.errors import ProviderError

logger = logging.getLogger(__name__)


class ReplicateClient:
    """Thin wrapper around `replicate.Client` that maps SDK errors to `ProviderError`."""

    def __init__(self, api_token: Optional[str], timeout: float = 120.0) -> None:
        self.api_token = api_token
        self._client: Optional[replicate.Client] = None
        self._timeout = timeout

        if not self.api_token:
            logger.warning("REPLICATE_API_TOKEN not set. Replicate SDK providers are unavailable.")

    def is_available(self) -> bool:
        return bool(self.api_token)

    @property
    def client(self) -> replicate.Client:
        if self._client is None:
            self._client = replicate.Client(api_token=self.api_token, timeout=self._timeout)
        return self._client

    def run(self, model: str, inputs: Dict[str, Any], provider: str) -> Any:
        if not self.is_available():
            raise ProviderError("Replicate API token not configured", provider=provider)

        logger.info("Calling Replicate model %s", model)
        try:
            return self.client.run(model, input=inputs)
        except ReplicateError as exc:
            status = getattr(exc, "status", None)
            raise ProviderError(f"Replicate call failed: {exc}", provider=provider, status_code=status) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Replicate transport error: {exc}", provider=provider) from exc
