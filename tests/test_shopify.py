import json

import httpx
import pytest
import respx

from collection_sort.errors import CollectionNotFoundError, RateLimitError, TransportError
from collection_sort.remote.models import MoveStatus
from collection_sort.remote.shopify import ShopifyCollectionClient

from conftest import COLLECTION_GID, ENDPOINT


def _client(session, events, fake_sleep, **kwargs):
    return ShopifyCollectionClient(ENDPOINT, "shpat_secret_token", events, session=session, sleep=fake_sleep, **kwargs)


def _move_payload(job=None, user_errors=()):
    return {"data": {"collectionReorderProducts": {"job": job, "userErrors": list(user_errors)}}}


@pytest.mark.asyncio
async def test_resolve_collection(events, fake_sleep):
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(ENDPOINT).mock(
            return_value=httpx.Response(
                200, json={"data": {"collectionByHandle": {"id": COLLECTION_GID, "title": "Polos"}}}
            )
        )
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep)
            collection = await client.resolve_collection("regiment-pride-polo-collection")
    assert collection.id == COLLECTION_GID
    assert collection.title == "Polos"
    request = route.calls.last.request
    assert request.headers["X-Shopify-Access-Token"] == "shpat_secret_token"
    body = json.loads(request.content)
    assert body["variables"] == {"handle": "regiment-pride-polo-collection"}
    assert "collectionByHandle" in body["query"]


@pytest.mark.asyncio
async def test_resolve_missing_collection(events, fake_sleep):
    async with respx.mock(assert_all_called=True) as router:
        router.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"data": {"collectionByHandle": None}}))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep)
            with pytest.raises(CollectionNotFoundError) as info:
                await client.resolve_collection("ghost")
    assert info.value.handle == "ghost"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, status, job_id",
    [
        (_move_payload(job={"id": "gid://shopify/Job/1", "done": True}), MoveStatus.APPLIED, "gid://shopify/Job/1"),
        (_move_payload(job={"id": "gid://shopify/Job/2", "done": False}), MoveStatus.QUEUED, "gid://shopify/Job/2"),
        (_move_payload(user_errors=[{"field": ["moves"], "message": "Invalid move"}]), MoveStatus.REJECTED, None),
        (_move_payload(user_errors=["Product not found"]), MoveStatus.REJECTED, None),
        (_move_payload(), MoveStatus.UNKNOWN, None),
    ],
)
async def test_move_to_front_outcomes(events, fake_sleep, payload, status, job_id):
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(ENDPOINT).mock(return_value=httpx.Response(200, json=payload))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep)
            outcome = await client.move_to_front(COLLECTION_GID, "gid://shopify/Product/7301")
    assert outcome.status is status
    assert outcome.job_id == job_id
    variables = json.loads(route.calls.last.request.content)["variables"]
    assert variables == {
        "collectionId": COLLECTION_GID,
        "moves": [{"id": "gid://shopify/Product/7301", "newPosition": "0"}],
    }


@pytest.mark.asyncio
async def test_rate_limit_pauses_then_raises(events, fake_sleep):
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(ENDPOINT).mock(return_value=httpx.Response(429, text="Too Many Requests"))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep, cooldown_seconds=10.0)
            with pytest.raises(RateLimitError) as info:
                await client.move_to_front(COLLECTION_GID, "gid://shopify/Product/1")
    assert info.value.status_code == 429
    assert isinstance(info.value, TransportError)
    assert fake_sleep.calls == [10.0]
    assert route.call_count == 1
    assert "Rate Limit Hit" in events.actions("WARN")


@pytest.mark.asyncio
async def test_throttled_graphql_error_is_rate_limit(events, fake_sleep):
    payload = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
    async with respx.mock(assert_all_called=True) as router:
        router.post(ENDPOINT).mock(return_value=httpx.Response(200, json=payload))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep, cooldown_seconds=3)
            with pytest.raises(RateLimitError):
                await client.move_to_front(COLLECTION_GID, "gid://shopify/Product/1")
    assert fake_sleep.calls == [3]


@pytest.mark.asyncio
async def test_forbidden_logs_permission_hint(events, fake_sleep):
    async with respx.mock(assert_all_called=True) as router:
        router.post(ENDPOINT).mock(return_value=httpx.Response(403, text="Forbidden"))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep)
            with pytest.raises(TransportError) as info:
                await client.resolve_collection("polos")
    assert info.value.status_code == 403
    assert not isinstance(info.value, RateLimitError)
    assert fake_sleep.calls == []
    errors = events.actions("ERROR")
    assert "API HTTP Error" in errors
    assert "Permission Check" in errors


@pytest.mark.asyncio
async def test_graphql_errors_without_data_raise(events, fake_sleep):
    async with respx.mock(assert_all_called=True) as router:
        router.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"errors": [{"message": "Field missing"}]}))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep)
            with pytest.raises(TransportError):
                await client.resolve_collection("polos")
    assert "GraphQL Warning/Error" in events.actions("WARN")


@pytest.mark.asyncio
async def test_graphql_errors_with_data_are_warnings(events, fake_sleep):
    payload = {
        "data": {"collectionByHandle": {"id": COLLECTION_GID, "title": "Polos"}},
        "errors": [{"message": "collectionByHandle is deprecated"}],
    }
    async with respx.mock(assert_all_called=True) as router:
        router.post(ENDPOINT).mock(return_value=httpx.Response(200, json=payload))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep)
            collection = await client.resolve_collection("polos")
    assert collection.id == COLLECTION_GID
    assert "GraphQL Warning/Error" in events.actions("WARN")


@pytest.mark.asyncio
async def test_connection_error_becomes_transport_error(events, fake_sleep):
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(ENDPOINT).mock(side_effect=httpx.ConnectError("connection refused"))
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep, retry_attempts=1)
            with pytest.raises(TransportError) as info:
                await client.move_to_front(COLLECTION_GID, "gid://shopify/Product/1")
    assert info.value.status_code is None
    assert route.call_count == 1
    assert "API Fetch Exception" in events.actions("ERROR")


@pytest.mark.asyncio
async def test_connection_error_is_retried(events, fake_sleep):
    responses = [
        httpx.ConnectError("reset"),
        httpx.Response(200, json=_move_payload(job={"id": "j", "done": True})),
    ]
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(ENDPOINT).mock(side_effect=responses)
        async with httpx.AsyncClient() as session:
            client = _client(session, events, fake_sleep, retry_attempts=3)
            outcome = await client.move_to_front(COLLECTION_GID, "gid://shopify/Product/1")
    assert outcome.status is MoveStatus.APPLIED
    assert route.call_count == 2
    assert len(fake_sleep.calls) == 1
    assert 1.0 <= fake_sleep.calls[0] < 2.0
