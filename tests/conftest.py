import pytest
import pytest_asyncio

from note_proxy.models import Delivered
from note_proxy.prometheus import NoteMetrics
from note_proxy.proxy_db import NoteProxyDb


class StubDelivery:
    """Delivery client double recording every call in order.

    ``outcomes`` are consumed one per call; an Exception instance is raised
    instead of returned. When exhausted, ``default`` is returned.
    """

    def __init__(self, outcomes=None, default=None):
        self.calls = []
        self.outcomes = list(outcomes or [])
        self.default = default or Delivered(200)

    async def deliver(self, endpoint, credential, payload):
        self.calls.append((endpoint, credential, payload))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def payloads(self):
        return [payload for _, _, payload in self.calls]


@pytest_asyncio.fixture
async def db(tmp_path):
    store = NoteProxyDb(str(tmp_path / "notes.db"))
    await store.init_db()
    await store.vaults.add({"name": "personal", "api_key": "vault-secret"})
    yield store
    await store.close()


@pytest.fixture
def metrics():
    return NoteMetrics()


@pytest.fixture
def stub_delivery():
    """Factory for StubDelivery instances."""
    return StubDelivery
