from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import SyncContext

_LOGGER = logging.getLogger(__name__)


class WebhookClient:
    """Posts run reports to an operator-supplied HTTP endpoint."""

    def __init__(self, context: SyncContext, transport: httpx.BaseTransport | None = None) -> None:
        self._url = context.webhook_url
        self._token = context.webhook_token
        self._client: httpx.Client | None = None
        if self._url:
            self._client = httpx.Client(
                timeout=20, verify=context.webhook_verify_ssl, transport=transport
            )
        else:
            _LOGGER.debug("No webhook URL configured; webhook notifications disabled")

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def post(self, payload: dict[str, Any]) -> bool:
        if self._client is None or self._url is None:
            return False
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            resp = self._client.post(self._url, json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in {401, 403}:
                _LOGGER.error(
                    "Webhook rejected the token (%s). Update NOTIFY_WEBHOOK_TOKEN.", status
                )
            else:
                _LOGGER.error("Webhook returned HTTP %s", status)
            return False
        except httpx.HTTPError as exc:
            _LOGGER.error("Failed to deliver webhook notification: %s", exc)
            return False
        return True

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
