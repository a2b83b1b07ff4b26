"""
HTTP consumer: POSTs each batch as NDJSON to an ingestion endpoint.

Status handling:
- 2xx: accepted
- 408, 429, 502, 503, 504, timeouts and transport errors: transient, retried
- any other status: permanent, batch dropped
"""

from __future__ import annotations

import json
from typing import Optional

import httpx
from loguru import logger

from records_client.errors import PermanentDeliveryError, TransientDeliveryError
from records_client.models import Batch

TRANSIENT_STATUS = frozenset({408, 429, 502, 503, 504})


def ndjson(batch: Batch) -> bytes:
    lines = [
        json.dumps(
            {"key": r.key, "query_id": r.query_id, "record": json.loads(r.body)},
            ensure_ascii=False,
        )
        for r in batch.records
    ]
    return ("\n".join(lines) + "\n").encode()


class HttpConsumer:
    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.headers = {"Content-Type": "application/x-ndjson", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, headers=self.headers, transport=self._transport
            )
            logger.info(f"HTTP consumer started: endpoint={self.endpoint}")

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP consumer stopped")

    async def __aenter__(self) -> "HttpConsumer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def consume(self, batch: Batch) -> None:
        if self._client is None:
            await self.start()
        try:
            resp = await self._client.post(
                self.endpoint,
                content=ndjson(batch),
                headers={"X-Query-Id": batch.query_id},
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientDeliveryError(f"{type(e).__name__}: {e}") from e

        if resp.status_code < 300:
            logger.debug(f"[{batch.query_id}] HTTP consumer accepted {len(batch)} records")
            return
        msg = f"HTTP {resp.status_code} from {self.endpoint}: {resp.text[:200]}"
        if resp.status_code in TRANSIENT_STATUS:
            raise TransientDeliveryError(msg)
        raise PermanentDeliveryError(msg)
