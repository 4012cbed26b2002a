"""Shopify Admin GraphQL client for collection ordering."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from collection_sort.errors import CollectionNotFoundError, RateLimitError, TransportError
from collection_sort.remote.models import Collection, MoveOutcome
from collection_sort.utils.events import EventLog
from collection_sort.utils.retry import retry_async

GET_COLLECTION_ID_QUERY = """
  query getCollectionByHandle($handle: String!) {
    collectionByHandle(handle: $handle) {
      id
      title
    }
  }
"""

MOVE_PRODUCT_IN_COLLECTION_MUTATION = """
  mutation collectionReorderProducts($collectionId: ID!, $moves: [MoveInput!]!) {
    collectionReorderProducts(id: $collectionId, moves: $moves) {
      job {
        id
        done
      }
      userErrors {
        field
        message
      }
    }
  }
"""

FRONT_POSITION = "0"
THROTTLED_CODE = "THROTTLED"
BODY_PREVIEW_LENGTH = 500


class ShopifyCollectionClient:
    def __init__(
        self,
        endpoint: str,
        access_token: str,
        events: EventLog,
        *,
        session: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        cooldown_seconds: float = 10.0,
        retry_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.endpoint = endpoint
        self.events = events
        self.cooldown_seconds = cooldown_seconds
        self.retry_attempts = retry_attempts
        self._headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        self._owns_session = session is None
        self._session = session or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def resolve_collection(self, handle: str) -> Collection:
        """Look up a collection by handle; raises CollectionNotFoundError when absent."""
        data = await self.execute(GET_COLLECTION_ID_QUERY, {"handle": handle})
        node = data.get("collectionByHandle")
        if not node:
            raise CollectionNotFoundError(handle)
        return Collection(id=node["id"], title=node.get("title") or "", handle=handle)

    async def move_to_front(self, collection_id: str, product_gid: str) -> MoveOutcome:
        data = await self.execute(
            MOVE_PRODUCT_IN_COLLECTION_MUTATION,
            {
                "collectionId": collection_id,
                "moves": [{"id": product_gid, "newPosition": FRONT_POSITION}],
            },
        )
        return MoveOutcome.from_payload(data.get("collectionReorderProducts"))

    async def execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST one GraphQL document and return its ``data`` member.

        Raises TransportError for connection failures, non-2xx responses and
        error-only GraphQL responses; RateLimitError (after the cooldown) for
        HTTP 429 or a THROTTLED GraphQL error.
        """
        post = retry_async(self._session.post, attempts=self.retry_attempts, sleep=self._sleep)
        try:
            response = await post(
                self.endpoint,
                json={"query": query, "variables": variables},
                headers=self._headers,
            )
        except (httpx.HTTPError, OSError, asyncio.TimeoutError) as exc:
            message = str(exc) or exc.__class__.__name__
            self.events.error("API Fetch Exception", details=message)
            raise TransportError(message) from exc

        if not response.is_success:
            await self._raise_for_status(response)

        try:
            payload = response.json()
        except ValueError as exc:
            self.events.error("API Fetch Exception", details=f"Invalid JSON response: {exc}")
            raise TransportError("Invalid JSON response") from exc
        if not isinstance(payload, dict):
            self.events.error("API Fetch Exception", details="Unexpected GraphQL response shape")
            raise TransportError("Unexpected GraphQL response shape")

        errors = payload.get("errors")
        if errors:
            self.events.warn("GraphQL Warning/Error", details=json.dumps(errors))
            if _is_throttled(errors):
                await self._cool_down()
                raise RateLimitError("GraphQL request throttled")
            if not payload.get("data"):
                raise TransportError("GraphQL Error")
        return payload.get("data") or {}

    async def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        body = response.text[:BODY_PREVIEW_LENGTH]
        self.events.error("API HTTP Error", details=f"Status: {status} {response.reason_phrase}. Body: {body}")
        if status == 403:
            self.events.error(
                "Permission Check",
                details="Received 403 Forbidden. Verify API token permissions (needs write_products).",
            )
        if status == 429:
            await self._cool_down()
            raise RateLimitError(f"API HTTP Error: {status}", status_code=status)
        raise TransportError(f"API HTTP Error: {status}", status_code=status)

    async def _cool_down(self) -> None:
        self.events.warn("Rate Limit Hit", details=f"Waiting {self.cooldown_seconds:g} seconds...")
        await self._sleep(self.cooldown_seconds)


def _is_throttled(errors: Any) -> bool:
    if not isinstance(errors, list):
        return False
    for error in errors:
        if isinstance(error, dict) and (error.get("extensions") or {}).get("code") == THROTTLED_CODE:
            return True
    return False
