import csv
import io
import json
from pathlib import Path

import pytest

from collection_sort.errors import CollectionNotFoundError, TransportError
from collection_sort.remote.models import Collection, MoveOutcome, MoveStatus
from collection_sort.utils.events import EventLog

FIXTURES = Path(__file__).parent / "fixtures"
SHOP_DOMAIN = "regiment.myshopify.com"
ENDPOINT = f"https://{SHOP_DOMAIN}/admin/api/2024-10/graphql.json"
COLLECTION_GID = "gid://shopify/Collection/4242"


def read_event_rows(path: Path) -> list[dict[str, str]]:
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.DictReader(handle))


class RecordingEvents(EventLog):
    """EventLog writing to a temp CSV with helpers for assertions."""

    def __init__(self, path: Path) -> None:
        self.console = io.StringIO()
        super().__init__(path=path, console_stream=self.console)

    def rows(self) -> list[dict[str, str]]:
        self.flush()
        return read_event_rows(self.path)

    def actions(self, level: str | None = None) -> list[str]:
        return [row["Action"] for row in self.rows() if level is None or row["Level"] == level]


@pytest.fixture()
def events(tmp_path):
    log = RecordingEvents(tmp_path / "events.csv")
    yield log
    log.close()


@pytest.fixture()
def write_jsonl(tmp_path):
    def _write(lines, name="sales.jsonl"):
        path = tmp_path / name
        rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
        path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        return path

    return _write


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def fake_sleep():
    return RecordingSleep()


class FrontInsertionCollection:
    """In-memory collection supporting only move-to-front."""

    def __init__(self, handle="regiment-pride-polo-collection", *, failing=(), rejected=(), queued=(), broken=()):
        self.handle = handle
        self.order: list[str] = []
        self.calls: list[str] = []
        self.failing = set(failing)
        self.rejected = set(rejected)
        self.queued = set(queued)
        self.broken = set(broken)

    async def resolve_collection(self, handle: str) -> Collection:
        if handle != self.handle:
            raise CollectionNotFoundError(handle)
        return Collection(id=COLLECTION_GID, title="Regiment Pride Polos", handle=handle)

    async def move_to_front(self, collection_id: str, product_gid: str) -> MoveOutcome:
        assert collection_id == COLLECTION_GID
        self.calls.append(product_gid)
        if product_gid in self.failing:
            raise TransportError("API HTTP Error: 502", status_code=502)
        if product_gid in self.broken:
            raise KeyError("collectionReorderProducts")
        if product_gid in self.rejected:
            return MoveOutcome.from_payload(
                {"job": None, "userErrors": [{"field": ["moves", "0", "id"], "message": "Product is not in collection"}]}
            )
        if product_gid in self.order:
            self.order.remove(product_gid)
        self.order.insert(0, product_gid)
        if product_gid in self.queued:
            return MoveOutcome(status=MoveStatus.QUEUED, job_id="gid://shopify/Job/1")
        return MoveOutcome(status=MoveStatus.APPLIED, job_id="gid://shopify/Job/2")


@pytest.fixture()
def collection_store():
    return FrontInsertionCollection()
