"""Thin client for the DataGolf live feeds."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from parlaygolf.config import get_datagolf_api_key, get_settings
from parlaygolf.settlement.errors import TransientGatewayError

logger = logging.getLogger(__name__)

IN_PLAY_PATH = "/preds/in-play"
FEED_TOURS = ("pga", "euro")


def _retry_log(retry_state: RetryCallState) -> None:
    attempt = retry_state.attempt_number
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("DataGolf retry attempt %s due to %s", attempt, exception)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return isinstance(exc, httpx.TransportError)


class DataGolfClient:
    """Convenient wrapper for the DataGolf feed API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_wait_seconds: Optional[float] = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or get_datagolf_api_key()
        self.base_url = (base_url or settings.datagolf_base_url).rstrip("/")
        self.retry_attempts = retry_attempts or settings.datagolf_retry_attempts
        self.retry_wait_seconds = (
            settings.datagolf_retry_wait_seconds if retry_wait_seconds is None else retry_wait_seconds
        )
        self._client = httpx.Client(
            timeout=timeout or settings.datagolf_timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def __enter__(self) -> "DataGolfClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _send(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self._client.get(f"{self.base_url}{path}", params={**params, "key": self.api_key})
        response.raise_for_status()
        return response.json()

    def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception(_is_retryable),
            after=_retry_log,
            reraise=True,
        )
        try:
            payload = retrying(self._send, path, params or {})
        except httpx.TimeoutException as exc:
            raise TransientGatewayError(f"DataGolf request to {path} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise TransientGatewayError(
                f"DataGolf request to {path} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.TransportError as exc:
            raise TransientGatewayError(f"DataGolf request to {path} failed: {exc}") from exc
        except ValueError as exc:
            raise TransientGatewayError(f"DataGolf returned a non-JSON body for {path}") from exc
        if not isinstance(payload, dict):
            raise TransientGatewayError(f"DataGolf returned an unexpected payload for {path}")
        return payload

    def get_in_play(self, tour: str = "pga") -> Dict[str, Any]:
        """Return the live in-play predictions payload for a tour."""

        if tour not in FEED_TOURS:
            raise ValueError(f"Unsupported DataGolf tour: {tour}")
        params = {"tour": tour, "dead_heat": "no", "odds_format": "percent"}
        payload = self._request(IN_PLAY_PATH, params)
        logger.info("DataGolf %s in-play feed returned %s players", tour, len(payload.get("data") or []))
        return payload
