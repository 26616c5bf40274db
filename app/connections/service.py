import logging
from typing import List

from fastapi import Depends

from app.chat.resolver import canonical_pair
from app.chat.store import ChatStore, get_chat_store
from app.core.errors import NotFoundError, UnauthorizedError, ValidationError

from .schemas import Connection, ConnectionStatus, PendingRequest
from .store import ConnectionStore, get_connection_store

logger = logging.getLogger(__name__)


class ConnectionService:
    def __init__(self, store: ConnectionStore, profiles: ChatStore):
        self.store = store
        self.profiles = profiles

    def _get(self, connection_id: str) -> Connection:
        connection = self.store.get_connection(connection_id)
        if connection is None:
            raise NotFoundError("Connection not found.", connection_id=connection_id)
        return connection

    def _get_pending_for_recipient(self, connection_id: str, user_id: str) -> Connection:
        connection = self._get(connection_id)

        if connection.requester_id == user_id:
            raise UnauthorizedError(
                "You cannot answer your own request.",
                connection_id=connection_id,
                user_id=user_id,
            )
        if user_id not in (connection.user_id_1, connection.user_id_2):
            raise UnauthorizedError(
                "You can only answer requests sent to you.",
                connection_id=connection_id,
                user_id=user_id,
            )
        if connection.status != ConnectionStatus.PENDING:
            raise ValidationError(
                "Connection request is not pending.", connection_id=connection_id
            )
        return connection

    def request(self, requester_id: str, other_user_id: str) -> Connection:
        if requester_id == other_user_id:
            raise ValidationError("Cannot connect with yourself.")

        if self.profiles.resolve_profile(other_user_id) is None:
            raise NotFoundError("User not found.", user_id=other_user_id)

        # Canonical ordering (must match the ordered_users constraint)
        user_id_1, user_id_2 = canonical_pair(requester_id, other_user_id)

        if self.store.find_connection(user_id_1, user_id_2) is not None:
            raise ValidationError(
                "Connection already exists.", user_id_1=user_id_1, user_id_2=user_id_2
            )

        connection = self.store.insert_connection(
            {
                "user_id_1": user_id_1,
                "user_id_2": user_id_2,
                "requester_id": requester_id,
                "status": ConnectionStatus.PENDING.value,
            }
        )
        logger.info(
            f"connection_requested connection_id={connection.connection_id} requester={requester_id}"
        )
        return connection

    def accept(self, connection_id: str, user_id: str) -> Connection:
        self._get_pending_for_recipient(connection_id, user_id)
        connection = self.store.update_status(connection_id, ConnectionStatus.ACCEPTED)
        logger.info(f"connection_accepted connection_id={connection_id} user_id={user_id}")
        return connection

    def reject(self, connection_id: str, user_id: str) -> None:
        # Rejected requests are deleted rather than kept
        self._get_pending_for_recipient(connection_id, user_id)
        self.store.delete_connection(connection_id)
        logger.info(f"connection_rejected connection_id={connection_id} user_id={user_id}")

    def remove(self, connection_id: str, user_id: str) -> None:
        connection = self._get(connection_id)
        if user_id not in (connection.user_id_1, connection.user_id_2):
            raise UnauthorizedError(
                "You are not part of this connection.",
                connection_id=connection_id,
                user_id=user_id,
            )
        self.store.delete_connection(connection_id)
        logger.info(f"connection_deleted connection_id={connection_id} user_id={user_id}")

    def list_accepted(self, user_id: str) -> List[Connection]:
        return self.store.list_connections(user_id, ConnectionStatus.ACCEPTED)

    def list_for_user(self, user_id: str) -> List[Connection]:
        return self.store.list_connections(user_id)

    def pending_requests(self, user_id: str) -> List[PendingRequest]:
        """Pending requests the user received (not the ones they sent)."""
        incoming = [
            connection
            for connection in self.store.list_connections(user_id, ConnectionStatus.PENDING)
            if connection.requester_id != user_id
        ]
        if not incoming:
            return []

        profiles = self.profiles.resolve_profiles(c.requester_id for c in incoming)
        return [
            PendingRequest(**connection.model_dump(), requester=profiles.get(connection.requester_id))
            for connection in incoming
        ]


def get_connection_service(
    store: ConnectionStore = Depends(get_connection_store),
    profiles: ChatStore = Depends(get_chat_store),
) -> ConnectionService:
    return ConnectionService(store, profiles)
