"""HTTP transport for the ``/info`` and ``/exchange`` endpoints."""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import HyperliquidApiError
from .utils import DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def collect_exchange_errors(payload: Any) -> List[str]:
    """Collect per-item error messages from an ``/exchange`` response.

    The venue reports batch failures inside an otherwise successful body::

        {"status": "ok", "response": {"data": {"statuses": [{"error": "..."}]}}}

    Args:
        payload: Parsed response body

    Returns:
        ``"status[i]: message"`` for every failed status, plus the message of a
        single ``data.status.error`` when present
    """
    if not isinstance(payload, dict):
        return []
    response = payload.get("response")
    data = response.get("data") if isinstance(response, dict) else None
    if not isinstance(data, dict):
        return []

    messages: List[str] = []
    statuses = data.get("statuses")
    if isinstance(statuses, list):
        for index, status in enumerate(statuses):
            if isinstance(status, dict) and isinstance(status.get("error"), str):
                messages.append(f"status[{index}]: {status['error']}")

    single = data.get("status")
    if isinstance(single, dict) and isinstance(single.get("error"), str):
        messages.append(single["error"])
    return messages


class HyperliquidTransport:
    """Thin async wrapper around the venue's JSON endpoints.

    No retries are performed; every failure surfaces as
    :class:`HyperliquidApiError` with the status and body in ``detail``.

    Example:
        ```python
        async with HyperliquidTransport("https://api.hyperliquid.xyz") as transport:
            meta = await transport.post_info({"type": "meta"})
        ```
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the transport.

        Args:
            base_url: API base URL without trailing slash
            timeout: Request timeout in seconds (ignored with ``http_client``)
            http_client: Pre-configured client to share. The transport only
                closes clients it created itself.
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        logger.debug("POST %s%s type=%s", self.base_url, path, _body_type(body))
        return await self._http_client.post(
            f"{self.base_url}{path}",
            headers={"Content-Type": "application/json"},
            json=body,
        )

    async def post_info(self, payload: Dict[str, Any]) -> Any:
        """POST a query to ``/info``.

        Args:
            payload: Query object, e.g. ``{"type": "meta"}``

        Returns:
            Parsed JSON body, or None if the body is not JSON

        Raises:
            HyperliquidApiError: On a non-2xx response
        """
        response = await self._post("/info", payload)
        data = _parse_json(response.text)
        if not response.is_success:
            logger.warning(
                "Hyperliquid info %s failed with status %s",
                payload.get("type"),
                response.status_code,
            )
            raise HyperliquidApiError(
                "Hyperliquid info request failed.",
                data if data is not None else {"status": response.status_code},
            )
        return data

    async def post_exchange(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a signed envelope to ``/exchange``.

        Args:
            body: ``{action, nonce, signature, vaultAddress?, expiresAfter?}``

        Returns:
            The parsed ``{"status": "ok", ...}`` body

        Raises:
            HyperliquidApiError: On a non-2xx response, a body that is not JSON,
                ``status != "ok"`` or nested per-item errors
        """
        response = await self._post("/exchange", body)
        text = response.text
        parsed = _parse_json(text)
        detail: Dict[str, Any] = {
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "body": parsed if parsed is not None else (text or None),
        }

        if not response.is_success:
            logger.warning("Hyperliquid exchange returned HTTP %s", response.status_code)
            raise HyperliquidApiError("Hyperliquid exchange action failed.", detail)
        if not isinstance(parsed, dict):
            logger.warning("Hyperliquid exchange returned a non-JSON body")
            raise HyperliquidApiError("Hyperliquid exchange action failed.", detail)
        if parsed.get("status") != "ok":
            reason = parsed.get("response") or parsed.get("error")
            logger.warning("Hyperliquid exchange rejected action: %s", reason)
            message = "Hyperliquid exchange returned error."
            if isinstance(reason, str) and reason:
                message = f"Hyperliquid exchange returned error: {reason}"
            raise HyperliquidApiError(message, detail)

        errors = collect_exchange_errors(parsed)
        if errors:
            logger.warning("Hyperliquid exchange returned action errors: %s", errors)
            detail["errors"] = errors
            raise HyperliquidApiError(
                f"Hyperliquid exchange returned action errors: {'; '.join(errors)}",
                detail,
            )
        return parsed

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "HyperliquidTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _parse_json(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _body_type(body: Dict[str, Any]) -> Optional[str]:
    action = body.get("action")
    if isinstance(action, dict):
        return action.get("type")
    return body.get("type")
