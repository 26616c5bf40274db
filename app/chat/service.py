import logging
from typing import Dict, Iterable, List, Optional

from fastapi import Depends

from app.core.errors import NotFoundError, UnauthorizedError, ValidationError

from .resolver import ConversationResolver, classify_thread, compute_display_title
from .schemas import (
    Message,
    ParticipantView,
    Profile,
    Thread,
    ThreadParticipant,
    ThreadType,
    ThreadView,
)
from .store import ChatStore, get_chat_store

logger = logging.getLogger(__name__)


class ChatService:
    """Authorization and validation in front of the resolver and the store."""

    def __init__(self, store: ChatStore):
        self.store = store
        self.resolver = ConversationResolver(store)

    # ---------- helpers ----------

    def _get_thread(self, thread_id: str) -> Thread:
        thread = self.store.get_thread_by_id(thread_id)
        if thread is None:
            raise NotFoundError("Thread not found.", thread_id=thread_id)
        return thread

    def require_participant(
        self, thread_id: str, user_id: str
    ) -> tuple[Thread, List[ThreadParticipant]]:
        thread = self._get_thread(thread_id)
        participants = self.store.get_participants(thread_id)
        if user_id not in {p.user_id for p in participants}:
            logger.warning(
                f"not_a_participant thread_id={thread_id} user_id={user_id}"
            )
            raise UnauthorizedError(
                "You are not a participant in this thread.",
                thread_id=thread_id,
                user_id=user_id,
            )
        return thread, participants

    def _require_sender(self, message_id: str, user_id: str) -> Message:
        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found.", message_id=message_id)
        if message.user_id is None or message.user_id != user_id:
            logger.warning(
                f"not_message_sender message_id={message_id} user_id={user_id}"
            )
            raise UnauthorizedError(
                "Only the sender can change this message.",
                message_id=message_id,
                user_id=user_id,
            )
        return message

    def _require_profiles(self, user_ids: Iterable[str]) -> None:
        ids = list(dict.fromkeys(user_ids))
        found = self.store.resolve_profiles(ids)
        missing = [user_id for user_id in ids if user_id not in found]
        if missing:
            raise NotFoundError("User not found.", user_ids=",".join(missing))

    @staticmethod
    def _clean_content(content: Optional[str]) -> str:
        if content is None or not content.strip():
            raise ValidationError("message_content is required.")
        return content

    def _build_view(
        self,
        thread: Thread,
        participants: List[ThreadParticipant],
        viewer_id: Optional[str],
        profiles: Optional[Dict[str, Profile]] = None,
    ) -> ThreadView:
        if profiles is None:
            profiles = self.store.resolve_profiles(p.user_id for p in participants)

        def display_name(user_id: str) -> Optional[str]:
            profile = profiles.get(user_id)
            return profile.displayname if profile else None

        return ThreadView(
            thread_id=thread.thread_id,
            thread_type=classify_thread(len(participants)),
            created_by_user_id=thread.created_by_user_id,
            created_at=thread.created_at,
            group_name=thread.group_name,
            group_image=thread.group_image,
            title=compute_display_title(thread, participants, viewer_id, display_name),
            participants=[
                ParticipantView(
                    user_id=p.user_id,
                    role=p.role,
                    joined_at=p.joined_at,
                    displayname=display_name(p.user_id) or "Unknown",
                    user_image=profiles[p.user_id].user_image if p.user_id in profiles else None,
                )
                for p in participants
            ],
        )

    # ---------- threads ----------

    def start_direct_thread(self, user_id: str, other_user_id: str) -> ThreadView:
        if user_id == other_user_id:
            raise ValidationError("You cannot start a conversation with yourself.")
        self._require_profiles([other_user_id])

        thread = self.resolver.get_or_create_direct_thread(user_id, other_user_id)
        return self._build_view(thread, self.store.get_participants(thread.thread_id), user_id)

    def create_thread(
        self,
        user_id: str,
        participant_ids: List[str],
        group_name: Optional[str] = None,
        thread_type: Optional[ThreadType] = None,
    ) -> ThreadView:
        others = [pid for pid in dict.fromkeys(participant_ids) if pid != user_id]
        if not others:
            raise ValidationError("participant_ids must name at least one other user.")

        if thread_type is None:
            thread_type = ThreadType.DIRECT if len(others) == 1 else ThreadType.GROUP
        if thread_type == ThreadType.DIRECT and len(others) != 1:
            raise ValidationError("A direct thread has exactly one other participant.")

        if thread_type == ThreadType.DIRECT:
            return self.start_direct_thread(user_id, others[0])

        self._require_profiles(others)
        thread = self.resolver.create_group_thread(user_id, others, group_name)
        return self._build_view(thread, self.store.get_participants(thread.thread_id), user_id)

    def get_thread(self, thread_id: str, viewer_id: Optional[str] = None) -> ThreadView:
        thread = self._get_thread(thread_id)
        return self._build_view(thread, self.store.get_participants(thread_id), viewer_id)

    def list_user_threads(
        self, user_id: str, kind: Optional[ThreadType] = None
    ) -> List[ThreadView]:
        thread_ids = self.store.find_participations(user_id)
        threads = sorted(
            self.store.get_threads(thread_ids),
            key=lambda thread: thread.created_at,
            reverse=True,
        )

        memberships = {
            thread.thread_id: self.store.get_participants(thread.thread_id)
            for thread in threads
        }
        profiles = self.store.resolve_profiles(
            p.user_id for participants in memberships.values() for p in participants
        )

        views = [
            self._build_view(thread, memberships[thread.thread_id], user_id, profiles)
            for thread in threads
        ]
        if kind is not None:
            views = [view for view in views if view.thread_type == kind]
        return views

    def update_thread(
        self,
        thread_id: str,
        user_id: str,
        group_name: Optional[str] = None,
        group_image: Optional[str] = None,
    ) -> ThreadView:
        self.require_participant(thread_id, user_id)

        fields = {}
        if group_name is not None:
            fields["group_name"] = group_name.strip() or None
        if group_image is not None:
            fields["group_image"] = group_image or None
        if not fields:
            raise ValidationError("Nothing to update: send group_name or group_image.")

        thread = self.store.update_thread(thread_id, fields)
        logger.info(
            f"thread_updated thread_id={thread_id} user_id={user_id} fields={','.join(fields)}"
        )
        return self._build_view(thread, self.store.get_participants(thread_id), user_id)

    def add_participants(
        self, thread_id: str, user_id: str, new_user_ids: List[str]
    ) -> ThreadView:
        self.require_participant(thread_id, user_id)
        self._require_profiles(new_user_ids)

        thread = self.resolver.add_participants(thread_id, new_user_ids)
        return self._build_view(thread, self.store.get_participants(thread_id), user_id)

    def delete_thread(self, thread_id: str, user_id: str) -> None:
        self.require_participant(thread_id, user_id)
        self.store.delete_thread(thread_id)
        logger.info(f"thread_deleted thread_id={thread_id} user_id={user_id}")

    # ---------- messages ----------

    def send_message(self, thread_id: str, user_id: str, content: Optional[str]) -> Message:
        content = self._clean_content(content)
        self.require_participant(thread_id, user_id)

        message = self.store.insert_message(thread_id, user_id, content)
        logger.info(
            f"message_sent thread_id={thread_id} user_id={user_id} message_id={message.message_id}"
        )
        return message

    def list_messages(self, thread_id: str, user_id: str) -> List[Message]:
        self.require_participant(thread_id, user_id)
        # Display order is created_at, never insertion order.
        return sorted(self.store.list_messages(thread_id), key=lambda m: m.created_at)

    def get_message(self, message_id: str, user_id: str) -> Message:
        message = self.store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found.", message_id=message_id)
        self.require_participant(message.thread_id, user_id)
        return message

    def edit_message(self, message_id: str, user_id: str, content: Optional[str]) -> Message:
        content = self._clean_content(content)
        self._require_sender(message_id, user_id)

        message = self.store.update_message(message_id, content)
        logger.info(f"message_edited message_id={message_id} user_id={user_id}")
        return message

    def delete_message(self, message_id: str, user_id: str) -> None:
        self._require_sender(message_id, user_id)
        self.store.delete_message(message_id)
        logger.info(f"message_deleted message_id={message_id} user_id={user_id}")


def get_chat_service(store: ChatStore = Depends(get_chat_store)) -> ChatService:
    return ChatService(store)
