from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from zoning.domain.classification import (
    ClassificationOutcome,
    ClassificationRequestPayload,
    ClassificationTransportError,
    parse_classification_payload,
)

DEFAULT_CLASSIFIER_TIMEOUT_SECONDS = 30.0

logger = logging.getLogger("runtime")


@dataclass
class HttpClassificationTransport:
    """POSTs item names to the classification endpoint.

    Errors map onto tagged outcomes:
    - connection errors and timeouts: transport error
    - non-2xx status: transport error carrying the status code
    - unreadable or invalid body: schema error
    """

    client: httpx.AsyncClient
    url: str

    async def classify(self, names: Sequence[str]) -> ClassificationOutcome:
        body = ClassificationRequestPayload(items=list(names)).model_dump(mode="json")
        started = time.monotonic()
        try:
            response = await self.client.post(self.url, json=body)
        except httpx.HTTPError as exc:
            logger.warning(
                "classification request failed",
                extra={"url": self.url, "item_count": len(names), "error": exc.__class__.__name__},
            )
            return ClassificationTransportError(detail=f"{exc.__class__.__name__}: {exc}")

        latency_ms = int((time.monotonic() - started) * 1000)
        if not response.is_success:
            logger.warning(
                "classification request rejected",
                extra={"url": self.url, "status_code": response.status_code, "latency_ms": latency_ms},
            )
            return ClassificationTransportError(
                detail=f"classification service responded {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            "classification response received",
            extra={"item_count": len(names), "latency_ms": latency_ms, "bytes": len(response.content)},
        )
        return parse_classification_payload(response.content)


def build_http_client(*, timeout_seconds: float = DEFAULT_CLASSIFIER_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
        headers={"Content-Type": "application/json"},
    )
