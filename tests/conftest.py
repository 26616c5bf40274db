import os

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PUBLIC_SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("REALTIME_ENABLED", "false")

import itertools
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generator, Iterable, List, Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from app.chat.realtime import MessageHub
from app.chat.schemas import Message, Profile, Thread, ThreadParticipant, ThreadType
from app.chat.store import ChatStore, get_chat_store
from app.connections.schemas import Connection, ConnectionStatus
from app.connections.store import ConnectionStore, get_connection_store
from app.core.errors import StoreUnavailableError
from app.uploads.storage import ObjectStore, get_object_store

EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Strictly increasing timestamps, one second apart."""

    def __init__(self):
        self._ticks = itertools.count(1)

    def __call__(self) -> datetime:
        return EPOCH + timedelta(seconds=next(self._ticks))


class FakeChatStore(ChatStore):
    """
    In-memory ChatStore.

    Operation names listed in `fail_on` raise StoreUnavailableError, like a
    Supabase store whose retries were exhausted. `list_messages` returns rows
    in insertion order so callers cannot rely on the store for sorting.
    """

    def __init__(self):
        self.now = FakeClock()
        self.hub = MessageHub()
        self.fail_on: set[str] = set()
        self.threads: Dict[str, Thread] = {}
        self.participants: Dict[str, List[ThreadParticipant]] = {}
        self.messages: Dict[str, Message] = {}
        self.profiles: Dict[str, Profile] = {}
        self.inserted_thread_ids: List[str] = []

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StoreUnavailableError("The data store is unavailable.", operation=operation)

    # helpers
    def add_profile(self, displayname: Optional[str], user_id: Optional[str] = None) -> str:
        user_id = user_id or str(uuid.uuid4())
        self.profiles[user_id] = Profile(id=user_id, displayname=displayname)
        return user_id

    def seed_message(self, thread_id: str, user_id: Optional[str], content: str, created_at: datetime) -> Message:
        message = Message(
            message_id=str(uuid.uuid4()),
            thread_id=thread_id,
            user_id=user_id,
            message_content=content,
            created_at=created_at,
        )
        self.messages[message.message_id] = message
        return message

    # contract
    def find_participations(self, user_id: str) -> List[str]:
        self._check("find_participations")
        return [
            thread_id
            for thread_id, members in self.participants.items()
            if any(p.user_id == user_id for p in members)
        ]

    def get_participants(self, thread_id: str) -> List[ThreadParticipant]:
        self._check("get_participants")
        return list(self.participants.get(thread_id, []))

    def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        self._check("get_thread_by_id")
        return self.threads.get(thread_id)

    def get_threads(self, thread_ids: Iterable[str]) -> List[Thread]:
        self._check("get_threads")
        threads = [self.threads[tid] for tid in thread_ids if tid in self.threads]
        return sorted(threads, key=lambda t: t.created_at, reverse=True)

    def insert_thread(self, fields: dict) -> Thread:
        self._check("insert_thread")
        thread = Thread(thread_id=str(uuid.uuid4()), created_at=self.now(), **fields)
        self.threads[thread.thread_id] = thread
        self.participants[thread.thread_id] = []
        self.inserted_thread_ids.append(thread.thread_id)
        return thread

    def insert_participants(self, thread_id: str, rows: List[dict]) -> None:
        self._check("insert_participants")
        joined_at = self.now()
        self.participants[thread_id].extend(
            ThreadParticipant(thread_id=thread_id, joined_at=joined_at, **row) for row in rows
        )

    def update_thread(self, thread_id: str, fields: dict) -> Thread:
        self._check("update_thread")
        thread = self.threads[thread_id].model_copy(update=fields)
        self.threads[thread_id] = thread
        return thread

    def expand_thread(self, thread_id: str, user_ids: List[str], thread_type: ThreadType) -> Thread:
        self._check("expand_thread")
        joined_at = self.now()
        self.participants[thread_id].extend(
            ThreadParticipant(thread_id=thread_id, user_id=user_id, joined_at=joined_at)
            for user_id in user_ids
        )
        thread = self.threads[thread_id].model_copy(update={"thread_type": thread_type})
        self.threads[thread_id] = thread
        return thread

    def delete_thread(self, thread_id: str) -> None:
        self._check("delete_thread")
        self.threads.pop(thread_id, None)
        self.participants.pop(thread_id, None)
        for message_id in [m.message_id for m in self.messages.values() if m.thread_id == thread_id]:
            del self.messages[message_id]

    def insert_message(self, thread_id: str, user_id: str, content: str) -> Message:
        self._check("insert_message")
        message = self.seed_message(thread_id, user_id, content, self.now())
        self.hub.publish(message)
        return message

    def get_message(self, message_id: str) -> Optional[Message]:
        self._check("get_message")
        return self.messages.get(message_id)

    def update_message(self, message_id: str, content: str) -> Message:
        self._check("update_message")
        message = self.messages[message_id].model_copy(
            update={"message_content": content, "updated_at": self.now()}
        )
        self.messages[message_id] = message
        return message

    def delete_message(self, message_id: str) -> None:
        self._check("delete_message")
        self.messages.pop(message_id, None)

    def list_messages(self, thread_id: str) -> List[Message]:
        self._check("list_messages")
        return [m for m in self.messages.values() if m.thread_id == thread_id]

    def subscribe_to_new_messages(self, thread_id: str, on_insert):
        return self.hub.subscribe(thread_id, on_insert)

    def resolve_profile(self, user_id: str) -> Optional[Profile]:
        self._check("resolve_profile")
        return self.profiles.get(user_id)


class FakeConnectionStore(ConnectionStore):
    def __init__(self):
        self.now = FakeClock()
        self.connections: Dict[str, Connection] = {}

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def find_connection(self, user_id_1: str, user_id_2: str) -> Optional[Connection]:
        for connection in self.connections.values():
            if (connection.user_id_1, connection.user_id_2) == (user_id_1, user_id_2):
                return connection
        return None

    def insert_connection(self, fields: dict) -> Connection:
        connection = Connection(connection_id=str(uuid.uuid4()), created_at=self.now(), **fields)
        self.connections[connection.connection_id] = connection
        return connection

    def update_status(self, connection_id: str, status: ConnectionStatus) -> Connection:
        connection = self.connections[connection_id].model_copy(update={"status": status})
        self.connections[connection_id] = connection
        return connection

    def delete_connection(self, connection_id: str) -> None:
        self.connections.pop(connection_id, None)

    def list_connections(self, user_id: str, status: Optional[ConnectionStatus] = None) -> List[Connection]:
        found = [
            c
            for c in self.connections.values()
            if user_id in (c.user_id_1, c.user_id_2) and (status is None or c.status == status)
        ]
        return sorted(found, key=lambda c: c.created_at, reverse=True)


class FakeObjectStore(ObjectStore):
    def __init__(self):
        self.now = FakeClock()
        self.objects: Dict[tuple[str, str], bytes] = {}
        self.content_types: Dict[tuple[str, str], str] = {}
        self.created: Dict[tuple[str, str], datetime] = {}

    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self.objects[(bucket, path)] = content
        self.content_types[(bucket, path)] = content_type
        self.created[(bucket, path)] = self.now()
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"http://supabase.test/storage/v1/object/public/{bucket}/{path}"

    def delete(self, bucket: str, paths: List[str]) -> None:
        for path in paths:
            self.objects.pop((bucket, path), None)

    def list(self, bucket: str, prefix: str) -> List[dict]:
        entries = []
        for (stored_bucket, path), content in self.objects.items():
            folder, _, name = path.rpartition("/")
            if stored_bucket != bucket or folder != prefix:
                continue
            entries.append(
                {
                    "id": str(uuid.uuid5(uuid.NAMESPACE_URL, path)),
                    "name": name,
                    "created_at": self.created[(bucket, path)].isoformat(),
                    "metadata": {"size": len(content), "mimetype": self.content_types[(bucket, path)]},
                }
            )
        return sorted(entries, key=lambda entry: entry["created_at"], reverse=True)


def make_token(user_id: str, expires_in: int = 3600, secret: Optional[str] = None) -> str:
    now = int(time.time())
    return jwt.encode(
        {
            "sub": user_id,
            "iss": f"{os.environ['PUBLIC_SUPABASE_URL']}/auth/v1",
            "aud": "authenticated",
            "iat": now,
            "exp": now + expires_in,
        },
        secret or os.environ["SUPABASE_JWT_SECRET"],
        algorithm="HS256",
    )


def auth(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def store() -> FakeChatStore:
    return FakeChatStore()


@pytest.fixture
def connection_store() -> FakeConnectionStore:
    return FakeConnectionStore()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def users(store: FakeChatStore) -> Dict[str, str]:
    """Profiles by display name."""
    return {name: store.add_profile(name) for name in ["Ann", "Bo", "Cid", "Dee", "Eli", "Fay"]}


@pytest.fixture
def client(
    store: FakeChatStore,
    connection_store: FakeConnectionStore,
    object_store: FakeObjectStore,
) -> Generator[TestClient, None, None]:
    from app.main import app

    app.dependency_overrides[get_chat_store] = lambda: store
    app.dependency_overrides[get_connection_store] = lambda: connection_store
    app.dependency_overrides[get_object_store] = lambda: object_store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    return auth
