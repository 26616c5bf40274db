"""
Thread and participant resolution for the chat subsystem.

A thread with two participants is a direct conversation between them; three
or more make a group. The participant count is the authoritative signal and
`threads.thread_type` is only a cache of `classify_thread(count)` that is
refreshed whenever membership changes.
"""

import logging
import threading
from typing import Callable, Iterable, List, Optional, Sequence

from app.core.errors import NotFoundError, PartialCreationError, ValidationError

from .schemas import ParticipantRole, Thread, ThreadParticipant, ThreadType
from .store import ChatStore

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"
GROUP_FALLBACK_TITLE = "Group Chat"
TITLE_NAME_LIMIT = 3

# Serializes direct-thread resolution per canonical pair within this process.
_PAIR_LOCKS = [threading.Lock() for _ in range(64)]


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    u1, u2 = sorted([str(user_a), str(user_b)])
    return u1, u2


def _pair_lock(user_a: str, user_b: str) -> threading.Lock:
    return _PAIR_LOCKS[hash(canonical_pair(user_a, user_b)) % len(_PAIR_LOCKS)]


def classify_thread(participant_count: int) -> ThreadType:
    if participant_count <= 2:
        return ThreadType.DIRECT
    return ThreadType.GROUP


def compute_display_title(
    thread: Thread,
    participants: Sequence[ThreadParticipant],
    current_user_id: Optional[str],
    profile_lookup: Callable[[str], Optional[str]],
) -> str:
    """
    Human-facing name for a thread, as seen by `current_user_id`.

    Two-party threads are named after the other party (`group_name` is
    ignored). Larger threads use `group_name` when set, otherwise up to three
    of the other members' names in store order, with "..." appended once the
    thread has more than four members.
    """
    others = [p for p in participants if p.user_id != current_user_id]

    if len(participants) <= 2:
        if not others:
            return UNKNOWN_NAME
        return profile_lookup(others[0].user_id) or UNKNOWN_NAME

    if thread.group_name and thread.group_name.strip():
        return thread.group_name

    names = [
        name
        for name in (profile_lookup(p.user_id) for p in others[:TITLE_NAME_LIMIT])
        if name
    ]
    if not names:
        return GROUP_FALLBACK_TITLE

    title = ", ".join(names)
    if len(participants) > TITLE_NAME_LIMIT + 1:
        title += "..."
    return title


def _unique(user_ids: Iterable[str], exclude: Iterable[str] = ()) -> List[str]:
    excluded = {str(user_id) for user_id in exclude}
    return [
        user_id
        for user_id in dict.fromkeys(str(user_id) for user_id in user_ids)
        if user_id not in excluded
    ]


class ConversationResolver:
    def __init__(self, store: ChatStore):
        self.store = store

    def get_or_create_direct_thread(self, user_a: str, user_b: str) -> Thread:
        """Return the single direct thread shared by two users, creating it if missing."""
        user_a, user_b = str(user_a), str(user_b)
        if user_a == user_b:
            raise ValidationError(
                "A direct conversation needs two different users.", user_id=user_a
            )

        with _pair_lock(user_a, user_b):
            existing = self._find_direct_thread(user_a, user_b)
            if existing is not None:
                return existing

            thread = self._create_thread(
                {
                    "thread_type": ThreadType.DIRECT.value,
                    "created_by_user_id": user_a,
                },
                [
                    {"user_id": user_a, "role": ParticipantRole.MEMBER.value},
                    {"user_id": user_b, "role": ParticipantRole.MEMBER.value},
                ],
            )
            logger.info(
                f"direct_thread_created thread_id={thread.thread_id} user_a={user_a} user_b={user_b}"
            )
            return thread

    def _find_direct_thread(self, user_a: str, user_b: str) -> Optional[Thread]:
        threads_a = set(self.store.find_participations(user_a))
        if not threads_a:
            return None

        shared = threads_a & set(self.store.find_participations(user_b))

        # Every shared thread is checked; stale data may hold several candidates.
        for thread_id in sorted(shared):
            participants = self.store.get_participants(thread_id)
            if len(participants) != 2:
                continue

            thread = self.store.get_thread_by_id(thread_id)
            if thread is not None and thread.thread_type == ThreadType.DIRECT:
                return thread

        return None

    def create_group_thread(
        self,
        creator_id: str,
        other_participant_ids: Iterable[str],
        group_name: Optional[str] = None,
    ) -> Thread:
        """Always creates a new group; identical memberships are not reused."""
        creator_id = str(creator_id)
        others = _unique(other_participant_ids, exclude=[creator_id])
        if not others:
            raise ValidationError(
                "A group needs at least one other participant.", user_id=creator_id
            )

        fields = {
            "thread_type": ThreadType.GROUP.value,
            "created_by_user_id": creator_id,
        }
        if group_name:
            fields["group_name"] = group_name

        thread = self._create_thread(
            fields,
            [{"user_id": creator_id, "role": ParticipantRole.ADMIN.value}]
            + [{"user_id": user_id, "role": ParticipantRole.MEMBER.value} for user_id in others],
        )
        logger.info(
            f"group_thread_created thread_id={thread.thread_id} creator={creator_id} members={len(others) + 1}"
        )
        return thread

    def _create_thread(self, fields: dict, participant_rows: List[dict]) -> Thread:
        thread = self.store.insert_thread(fields)

        try:
            self.store.insert_participants(thread.thread_id, participant_rows)
        except Exception as error:
            logger.error(
                f"participant_insert_failed thread_id={thread.thread_id} "
                f"user_id={fields.get('created_by_user_id')} error={error!r}"
            )
            try:
                self.store.delete_thread(thread.thread_id)
            except Exception:
                logger.exception(f"thread_rollback_failed thread_id={thread.thread_id}")
            raise PartialCreationError(
                "Failed to add participants to the new thread.",
                thread_id=thread.thread_id,
            ) from error

        return thread

    def add_participants(self, thread_id: str, new_user_ids: Iterable[str]) -> Thread:
        """Add members to a thread, promoting it to a group when it grows past two."""
        thread = self.store.get_thread_by_id(thread_id)
        if thread is None:
            raise NotFoundError("Thread not found.", thread_id=thread_id)

        current = [p.user_id for p in self.store.get_participants(thread_id)]
        new_ids = _unique(new_user_ids, exclude=current)
        if not new_ids:
            raise ValidationError(
                "No new participants to add.", thread_id=thread_id
            )

        # There is no group -> direct transition.
        thread_type = classify_thread(len(current) + len(new_ids))
        if thread.thread_type == ThreadType.GROUP:
            thread_type = ThreadType.GROUP

        updated = self.store.expand_thread(thread_id, new_ids, thread_type)
        logger.info(
            f"participants_added thread_id={thread_id} added={len(new_ids)} "
            f"thread_type={thread_type.value}"
        )
        return updated
