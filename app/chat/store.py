import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from supabase import Client

from app.core.records import parse_first, parse_record, parse_records
from app.core.retry import execute_with_retry
from app.core.supabase_client import get_supabase

from .realtime import (
    MessageHub,
    OnInsert,
    SupabaseRealtimeBridge,
    Unsubscribe,
    get_realtime_bridge,
    message_hub,
)
from .schemas import Message, Profile, Thread, ThreadParticipant, ThreadType

logger = logging.getLogger(__name__)


class ChatStore(ABC):
    """
    Everything the chat core needs from the relational store.

    Implementations own error translation: any failure to reach or write
    the store surfaces as `StoreUnavailableError`.
    """

    @abstractmethod
    def find_participations(self, user_id: str) -> List[str]:
        """Ids of every thread `user_id` participates in."""

    @abstractmethod
    def get_participants(self, thread_id: str) -> List[ThreadParticipant]: ...

    @abstractmethod
    def get_thread_by_id(self, thread_id: str) -> Optional[Thread]: ...

    @abstractmethod
    def get_threads(self, thread_ids: Iterable[str]) -> List[Thread]:
        """Threads for the given ids, newest first."""

    @abstractmethod
    def insert_thread(self, fields: dict) -> Thread: ...

    @abstractmethod
    def insert_participants(self, thread_id: str, rows: List[dict]) -> None:
        """Insert `{user_id, role}` rows in one statement (all or nothing)."""

    @abstractmethod
    def update_thread(self, thread_id: str, fields: dict) -> Thread: ...

    @abstractmethod
    def expand_thread(
        self, thread_id: str, user_ids: List[str], thread_type: ThreadType
    ) -> Thread:
        """Add members and set the cached type atomically."""

    @abstractmethod
    def delete_thread(self, thread_id: str) -> None:
        """Delete a thread; messages and participant rows cascade."""

    @abstractmethod
    def insert_message(self, thread_id: str, user_id: str, content: str) -> Message: ...

    @abstractmethod
    def get_message(self, message_id: str) -> Optional[Message]: ...

    @abstractmethod
    def update_message(self, message_id: str, content: str) -> Message: ...

    @abstractmethod
    def delete_message(self, message_id: str) -> None: ...

    @abstractmethod
    def list_messages(self, thread_id: str) -> List[Message]:
        """Messages of one thread, ascending `created_at`."""

    @abstractmethod
    def subscribe_to_new_messages(self, thread_id: str, on_insert: OnInsert) -> Unsubscribe: ...

    @abstractmethod
    def resolve_profile(self, user_id: str) -> Optional[Profile]: ...

    def resolve_profiles(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        profiles = {}
        for user_id in dict.fromkeys(user_ids):
            profile = self.resolve_profile(user_id)
            if profile is not None:
                profiles[user_id] = profile
        return profiles


class SupabaseChatStore(ChatStore):
    def __init__(
        self,
        client: Client,
        hub: MessageHub,
        realtime: Optional[SupabaseRealtimeBridge] = None,
    ):
        self.client = client
        self.hub = hub
        self.realtime = realtime

    def find_participations(self, user_id: str) -> List[str]:
        response = execute_with_retry(
            "find_participations",
            lambda: self.client.table("thread_participants")
            .select("thread_id")
            .eq("user_id", user_id)
            .execute(),
        )
        return [row["thread_id"] for row in response.data or []]

    def get_participants(self, thread_id: str) -> List[ThreadParticipant]:
        response = execute_with_retry(
            "get_participants",
            lambda: self.client.table("thread_participants")
            .select("thread_id, user_id, role, joined_at")
            .eq("thread_id", thread_id)
            .order("joined_at", desc=False)
            .execute(),
        )
        return parse_records(ThreadParticipant, response.data, "get_participants")

    def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        response = execute_with_retry(
            "get_thread_by_id",
            lambda: self.client.table("threads")
            .select("*")
            .eq("thread_id", thread_id)
            .limit(1)
            .execute(),
        )
        if not response.data:
            return None
        return parse_first(Thread, response.data, "get_thread_by_id")

    def get_threads(self, thread_ids: Iterable[str]) -> List[Thread]:
        ids = list(thread_ids)
        if not ids:
            return []

        response = execute_with_retry(
            "get_threads",
            lambda: self.client.table("threads")
            .select("*")
            .in_("thread_id", ids)
            .order("created_at", desc=True)
            .execute(),
        )
        return parse_records(Thread, response.data, "get_threads")

    def insert_thread(self, fields: dict) -> Thread:
        response = execute_with_retry(
            "insert_thread",
            lambda: self.client.table("threads").insert(fields).execute(),
            idempotent=False,
        )
        return parse_first(Thread, response.data, "insert_thread")

    def insert_participants(self, thread_id: str, rows: List[dict]) -> None:
        payload = [{"thread_id": thread_id, **row} for row in rows]
        execute_with_retry(
            "insert_participants",
            lambda: self.client.table("thread_participants").insert(payload).execute(),
            idempotent=False,
        )

    def update_thread(self, thread_id: str, fields: dict) -> Thread:
        response = execute_with_retry(
            "update_thread",
            lambda: self.client.table("threads")
            .update(fields)
            .eq("thread_id", thread_id)
            .execute(),
        )
        return parse_first(Thread, response.data, "update_thread")

    def expand_thread(
        self, thread_id: str, user_ids: List[str], thread_type: ThreadType
    ) -> Thread:
        response = execute_with_retry(
            "expand_thread",
            lambda: self.client.rpc(
                "add_thread_participants",
                {
                    "p_thread_id": thread_id,
                    "p_user_ids": user_ids,
                    "p_thread_type": thread_type.value,
                },
            ).execute(),
            idempotent=False,
        )
        return parse_first(Thread, response.data, "expand_thread")

    def delete_thread(self, thread_id: str) -> None:
        execute_with_retry(
            "delete_thread",
            lambda: self.client.table("threads")
            .delete()
            .eq("thread_id", thread_id)
            .execute(),
        )

    def insert_message(self, thread_id: str, user_id: str, content: str) -> Message:
        response = execute_with_retry(
            "insert_message",
            lambda: self.client.table("messages")
            .insert(
                {
                    "thread_id": thread_id,
                    "user_id": user_id,
                    "message_content": content,
                }
            )
            .execute(),
            idempotent=False,
        )
        message = parse_first(Message, response.data, "insert_message")
        self.hub.publish(message)
        return message

    def get_message(self, message_id: str) -> Optional[Message]:
        response = execute_with_retry(
            "get_message",
            lambda: self.client.table("messages")
            .select("*")
            .eq("message_id", message_id)
            .limit(1)
            .execute(),
        )
        if not response.data:
            return None
        return parse_first(Message, response.data, "get_message")

    def update_message(self, message_id: str, content: str) -> Message:
        # created_at is never touched so display order survives edits
        response = execute_with_retry(
            "update_message",
            lambda: self.client.table("messages")
            .update(
                {
                    "message_content": content,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            .eq("message_id", message_id)
            .execute(),
        )
        return parse_first(Message, response.data, "update_message")

    def delete_message(self, message_id: str) -> None:
        execute_with_retry(
            "delete_message",
            lambda: self.client.table("messages")
            .delete()
            .eq("message_id", message_id)
            .execute(),
        )

    def list_messages(self, thread_id: str) -> List[Message]:
        response = execute_with_retry(
            "list_messages",
            lambda: self.client.table("messages")
            .select("*")
            .eq("thread_id", thread_id)
            .order("created_at", desc=False)
            .execute(),
        )
        return parse_records(Message, response.data, "list_messages")

    def subscribe_to_new_messages(self, thread_id: str, on_insert: OnInsert) -> Unsubscribe:
        if self.realtime is None:
            return self.hub.subscribe(thread_id, on_insert)

        # Inserts from other processes arrive through the realtime bridge.
        self.realtime.watch(thread_id)
        unsubscribe_local = self.hub.subscribe(thread_id, on_insert)

        def unsubscribe() -> None:
            unsubscribe_local()
            self.realtime.unwatch(thread_id)

        return unsubscribe

    def resolve_profile(self, user_id: str) -> Optional[Profile]:
        response = execute_with_retry(
            "resolve_profile",
            lambda: self.client.table("profiles")
            .select("id, displayname, user_image")
            .eq("id", user_id)
            .limit(1)
            .execute(),
        )
        if not response.data:
            return None
        return parse_first(Profile, response.data, "resolve_profile")

    def resolve_profiles(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}

        response = execute_with_retry(
            "resolve_profiles",
            lambda: self.client.table("profiles")
            .select("id, displayname, user_image")
            .in_("id", ids)
            .execute(),
        )
        return {
            row["id"]: parse_record(Profile, row, "resolve_profiles") for row in response.data or []
        }


def get_chat_store() -> ChatStore:
    return SupabaseChatStore(get_supabase(), message_hub, get_realtime_bridge())
