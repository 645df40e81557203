"""
Direct HTTP client for the Replicate predictions API.

Used for community models pinned by version hash (e.g. LaMa), where the
predictions endpoint is called with `version` and then polled until the
prediction settles. The settled prediction object is returned untouched;
turning its `output` into a URL is the gateway's job.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from adapt_api.services.errors import ProviderError

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.replicate.com/v1"
TERMINAL_FAILURES = {"failed", "canceled"}
PENDING_STATUSES = {"starting", "processing"}


class ReplicateHTTPClient:
    """Minimal predictions client: create, poll, return the final prediction."""

    def __init__(
        self,
        api_token: Optional[str],
        base_url: str = API_BASE_URL,
        request_timeout: float = 30.0,
        poll_interval: float = 2.0,
        max_wait: float = 120.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.session = session or requests.Session()

        if not self.api_token:
            logger.warning("REPLICATE_API_TOKEN not set. HTTP predictions will fail until configured.")
        elif not self.api_token.startswith("r8_"):
            logger.warning("Replicate token doesn't start with 'r8_' - it might be invalid")

    def is_available(self) -> bool:
        return bool(self.api_token)

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Token {self.api_token}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def version_of(model: str) -> str:
        """
        Extract the version hash from `owner/name:version`.

        The predictions endpoint expects the bare hash; anything without a
        colon is passed through unchanged.
        """
        if ":" in model:
            return model.split(":", 1)[1]
        return model

    def _raise_for_status(self, response: requests.Response, provider: str) -> None:
        if response.ok:
            return
        try:
            detail = response.json().get("detail", response.text[:200])
        except ValueError:
            detail = response.text[:200]

        messages = {
            401: "Replicate authentication failed (401): check REPLICATE_API_TOKEN",
            404: f"Replicate model not found (404): {detail}",
            422: f"Replicate rejected the input (422): {detail}",
            429: "Replicate rate limited (429): too many requests",
        }
        message = messages.get(response.status_code, f"Replicate HTTP {response.status_code}: {detail}")
        raise ProviderError(message, provider=provider, status_code=response.status_code)

    def predict(self, model: str, inputs: Dict[str, Any], provider: str) -> Dict[str, Any]:
        """Create a prediction and block until it succeeds, fails or times out."""
        if not self.is_available():
            raise ProviderError("Replicate API token not configured", provider=provider)

        payload = {"version": self.version_of(model), "input": inputs}
        logger.info("Creating Replicate prediction for %s", model)
        try:
            response = self.session.post(
                f"{self.base_url}/predictions",
                headers=self._headers,
                json=payload,
                timeout=self.request_timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise ProviderError(f"Replicate request failed: {exc}", provider=provider) from exc
        self._raise_for_status(response, provider)

        prediction = response.json()
        return self._wait_for_prediction(prediction, provider)

    def _wait_for_prediction(self, prediction: Dict[str, Any], provider: str) -> Dict[str, Any]:
        get_url = (prediction.get("urls") or {}).get("get")
        start = time.monotonic()

        while True:
            status = prediction.get("status")
            if status == "succeeded":
                return prediction
            if status in TERMINAL_FAILURES:
                error = prediction.get("error") or "Unknown error"
                raise ProviderError(f"Prediction {status}: {error}", provider=provider)
            if status not in PENDING_STATUSES:
                raise ProviderError(f"Unknown prediction status: {status!r}", provider=provider)
            if not get_url:
                raise ProviderError("Prediction response has no polling URL", provider=provider)
            if time.monotonic() - start >= self.max_wait:
                raise ProviderError(f"Prediction timed out after {self.max_wait:.0f}s", provider=provider)

            time.sleep(self.poll_interval)
            try:
                response = self.session.get(get_url, headers=self._headers, timeout=self.request_timeout)
            except requests.exceptions.RequestException as exc:
                raise ProviderError(f"Polling prediction failed: {exc}", provider=provider) from exc
            self._raise_for_status(response, provider)
            prediction = response.json()
