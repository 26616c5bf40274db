from abc import ABC, abstractmethod
from typing import List, Optional

from supabase import Client

from app.core.records import parse_first, parse_records
from app.core.retry import execute_with_retry
from app.core.supabase_client import get_supabase

from .schemas import Connection, ConnectionStatus


class ConnectionStore(ABC):
    @abstractmethod
    def get_connection(self, connection_id: str) -> Optional[Connection]: ...

    @abstractmethod
    def find_connection(self, user_id_1: str, user_id_2: str) -> Optional[Connection]:
        """Lookup by canonical pair (`user_id_1 < user_id_2`)."""

    @abstractmethod
    def insert_connection(self, fields: dict) -> Connection: ...

    @abstractmethod
    def update_status(self, connection_id: str, status: ConnectionStatus) -> Connection: ...

    @abstractmethod
    def delete_connection(self, connection_id: str) -> None: ...

    @abstractmethod
    def list_connections(
        self, user_id: str, status: Optional[ConnectionStatus] = None
    ) -> List[Connection]:
        """Connections on either side of the pair, newest first."""


class SupabaseConnectionStore(ConnectionStore):
    def __init__(self, client: Client):
        self.client = client

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        response = execute_with_retry(
            "get_connection",
            lambda: self.client.table("connections")
            .select("*")
            .eq("connection_id", connection_id)
            .limit(1)
            .execute(),
        )
        if not response.data:
            return None
        return parse_first(Connection, response.data, "get_connection")

    def find_connection(self, user_id_1: str, user_id_2: str) -> Optional[Connection]:
        response = execute_with_retry(
            "find_connection",
            lambda: self.client.table("connections")
            .select("*")
            .eq("user_id_1", user_id_1)
            .eq("user_id_2", user_id_2)
            .limit(1)
            .execute(),
        )
        if not response.data:
            return None
        return parse_first(Connection, response.data, "find_connection")

    def insert_connection(self, fields: dict) -> Connection:
        response = execute_with_retry(
            "insert_connection",
            lambda: self.client.table("connections").insert(fields).execute(),
            idempotent=False,
        )
        return parse_first(Connection, response.data, "insert_connection")

    def update_status(self, connection_id: str, status: ConnectionStatus) -> Connection:
        response = execute_with_retry(
            "update_connection_status",
            lambda: self.client.table("connections")
            .update({"status": status.value})
            .eq("connection_id", connection_id)
            .execute(),
        )
        return parse_first(Connection, response.data, "update_connection_status")

    def delete_connection(self, connection_id: str) -> None:
        execute_with_retry(
            "delete_connection",
            lambda: self.client.table("connections")
            .delete()
            .eq("connection_id", connection_id)
            .execute(),
        )

    def list_connections(
        self, user_id: str, status: Optional[ConnectionStatus] = None
    ) -> List[Connection]:
        def query():
            builder = (
                self.client.table("connections")
                .select("*")
                .or_(f"user_id_1.eq.{user_id},user_id_2.eq.{user_id}")
            )
            if status is not None:
                builder = builder.eq("status", status.value)
            return builder.order("created_at", desc=True).execute()

        response = execute_with_retry("list_connections", query)
        return parse_records(Connection, response.data, "list_connections")


def get_connection_store() -> ConnectionStore:
    return SupabaseConnectionStore(get_supabase())
