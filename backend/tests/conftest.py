"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from supportchat.chat.broadcast import BroadcastRouter
from supportchat.chat.rooms import room_id_for
from supportchat.chat.schemas import UserRole
from supportchat.chat.service import ChatService
from supportchat.config import AppSettings, StoreSettings, UploadSettings, reset_config, set_config
from supportchat.main import create_app
from supportchat.store.service import MessageStore
from supportchat.uploads.service import ImageStorageService


class FakeWebSocket:
    """Records frames sent through send_json.

    Set ``fail=True`` to simulate a dropped connection.
    """

    def __init__(self, name: str = "ws", fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.sent = []

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} is closed")
        self.sent.append(data)

    def events(self):
        return [frame["event"] for frame in self.sent]

    def last(self, event: str):
        matches = [frame["data"] for frame in self.sent if frame["event"] == event]
        return matches[-1] if matches else None

    def __repr__(self) -> str:
        return f"FakeWebSocket({self.name})"


@pytest.fixture
def store():
    """A fresh in-memory message store (not the singleton)."""
    s = MessageStore(db_path=":memory:")
    yield s
    s.close()


@pytest.fixture
def admin(store):
    return store.ensure_admin("admin")


@pytest.fixture
def customer(store):
    return store.create_user("alice", UserRole.CUSTOMER)


@pytest.fixture
def room_id(customer, admin):
    return room_id_for(customer.id, admin.id)


@pytest.fixture
def broadcast_router():
    r = BroadcastRouter()
    r.start()
    yield r
    r.close()


@pytest.fixture
def chat_service(store, broadcast_router):
    return ChatService(store, broadcast_router)


@pytest.fixture
def app_settings(tmp_path):
    """Settings pointing at an in-memory store and a temp upload dir."""
    settings = AppSettings(
        store=StoreSettings(db_path=":memory:"),
        uploads=UploadSettings(directory=str(tmp_path / "uploads")),
    )
    set_config(settings)
    yield settings
    reset_config()


@pytest.fixture
def api_client(app_settings):
    """TestClient running the full app lifespan.

    The context manager keeps one event loop for every WebSocket opened
    through this client, so broadcasts reach all of them.
    """
    MessageStore.reset_instance()
    ImageStorageService.reset_instance()
    with TestClient(create_app()) as client:
        yield client
    MessageStore.reset_instance()
    ImageStorageService.reset_instance()
