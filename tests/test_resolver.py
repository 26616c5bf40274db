from concurrent.futures import ThreadPoolExecutor

import pytest

from app.chat.resolver import ConversationResolver
from app.chat.schemas import ParticipantRole, ThreadType
from app.core.errors import NotFoundError, PartialCreationError, StoreUnavailableError, ValidationError


@pytest.fixture
def resolver(store) -> ConversationResolver:
    return ConversationResolver(store)


def member_ids(store, thread_id):
    return sorted(p.user_id for p in store.get_participants(thread_id))


def test_direct_thread_is_reused(resolver, store, users) -> None:
    first = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])
    second = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert first.thread_id == second.thread_id
    assert len(store.threads) == 1


def test_direct_thread_is_symmetric(resolver, users) -> None:
    forward = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])
    backward = resolver.get_or_create_direct_thread(users["Bo"], users["Ann"])

    assert forward.thread_id == backward.thread_id


def test_new_direct_thread_has_both_users_as_members(resolver, store, users) -> None:
    thread = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert thread.thread_type == ThreadType.DIRECT
    assert thread.created_by_user_id == users["Ann"]
    assert member_ids(store, thread.thread_id) == sorted([users["Ann"], users["Bo"]])
    assert {p.role for p in store.get_participants(thread.thread_id)} == {ParticipantRole.MEMBER}


def test_direct_thread_with_yourself_is_rejected(resolver, store, users) -> None:
    with pytest.raises(ValidationError):
        resolver.get_or_create_direct_thread(users["Ann"], users["Ann"])

    assert store.threads == {}


def test_shared_group_is_not_mistaken_for_direct_thread(resolver, store, users) -> None:
    group = resolver.create_group_thread(users["Ann"], [users["Bo"], users["Cid"]])

    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert direct.thread_id != group.thread_id
    assert direct.thread_type == ThreadType.DIRECT


def test_two_member_thread_typed_group_is_not_reused(resolver, store, users) -> None:
    group = resolver.create_group_thread(users["Ann"], [users["Bo"]])
    assert len(store.get_participants(group.thread_id)) == 2

    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert direct.thread_id != group.thread_id


def test_every_shared_candidate_is_checked(resolver, store, users) -> None:
    # Several shared threads where only the last one is a real direct thread.
    resolver.create_group_thread(users["Ann"], [users["Bo"], users["Cid"]])
    resolver.create_group_thread(users["Bo"], [users["Ann"], users["Dee"]])
    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert resolver.get_or_create_direct_thread(users["Bo"], users["Ann"]).thread_id == direct.thread_id
    assert len(store.threads) == 3


def test_concurrent_resolution_creates_one_thread(resolver, store, users) -> None:
    pairs = [(users["Ann"], users["Bo"]), (users["Bo"], users["Ann"])] * 8

    with ThreadPoolExecutor(max_workers=8) as pool:
        thread_ids = set(pool.map(lambda pair: resolver.get_or_create_direct_thread(*pair).thread_id, pairs))

    assert len(thread_ids) == 1
    assert len(store.threads) == 1


def test_group_thread_roles_and_membership(resolver, store, users) -> None:
    thread = resolver.create_group_thread(
        users["Ann"], [users["Bo"], users["Cid"], users["Bo"], users["Ann"]], group_name="Band"
    )

    assert thread.thread_type == ThreadType.GROUP
    assert thread.group_name == "Band"
    roles = {p.user_id: p.role for p in store.get_participants(thread.thread_id)}
    assert roles == {
        users["Ann"]: ParticipantRole.ADMIN,
        users["Bo"]: ParticipantRole.MEMBER,
        users["Cid"]: ParticipantRole.MEMBER,
    }


def test_group_threads_are_never_reused(resolver, users) -> None:
    first = resolver.create_group_thread(users["Ann"], [users["Bo"], users["Cid"]])
    second = resolver.create_group_thread(users["Ann"], [users["Bo"], users["Cid"]])

    assert first.thread_id != second.thread_id


def test_group_needs_another_participant(resolver, store, users) -> None:
    with pytest.raises(ValidationError):
        resolver.create_group_thread(users["Ann"], [users["Ann"]])

    assert store.threads == {}


@pytest.mark.parametrize("direct", [True, False])
def test_participant_failure_rolls_back_thread(resolver, store, users, direct) -> None:
    store.fail_on.add("insert_participants")

    with pytest.raises(PartialCreationError) as exc_info:
        if direct:
            resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])
        else:
            resolver.create_group_thread(users["Ann"], [users["Bo"], users["Cid"]])

    attempted = store.inserted_thread_ids[-1]
    assert exc_info.value.context["thread_id"] == attempted
    assert store.get_thread_by_id(attempted) is None
    assert store.find_participations(users["Ann"]) == []


def test_rollback_failure_still_reports_partial_creation(resolver, store, users) -> None:
    store.fail_on.update({"insert_participants", "delete_thread"})

    with pytest.raises(PartialCreationError):
        resolver.create_group_thread(users["Ann"], [users["Bo"], users["Cid"]])


def test_store_outage_propagates_before_any_write(resolver, store, users) -> None:
    store.fail_on.add("find_participations")

    with pytest.raises(StoreUnavailableError):
        resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert store.threads == {}


def test_adding_people_turns_direct_thread_into_group(resolver, store, users) -> None:
    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    updated = resolver.add_participants(direct.thread_id, [users["Cid"], users["Dee"]])

    assert updated.thread_type == ThreadType.GROUP
    assert store.get_thread_by_id(direct.thread_id).thread_type == ThreadType.GROUP
    assert len(store.get_participants(direct.thread_id)) == 4
    new_roles = {p.role for p in store.get_participants(direct.thread_id) if p.user_id in (users["Cid"], users["Dee"])}
    assert new_roles == {ParticipantRole.MEMBER}


def test_pair_resolves_to_new_thread_after_direct_thread_grew(resolver, users) -> None:
    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])
    resolver.add_participants(direct.thread_id, [users["Cid"]])

    again = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    assert again.thread_id != direct.thread_id


def test_failed_expansion_leaves_thread_untouched(resolver, store, users) -> None:
    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])
    store.fail_on.add("expand_thread")

    with pytest.raises(StoreUnavailableError):
        resolver.add_participants(direct.thread_id, [users["Cid"]])

    assert store.get_thread_by_id(direct.thread_id).thread_type == ThreadType.DIRECT
    assert len(store.get_participants(direct.thread_id)) == 2


def test_adding_existing_members_is_rejected(resolver, users) -> None:
    direct = resolver.get_or_create_direct_thread(users["Ann"], users["Bo"])

    with pytest.raises(ValidationError):
        resolver.add_participants(direct.thread_id, [users["Bo"], users["Ann"]])


def test_adding_to_missing_thread(resolver, users) -> None:
    with pytest.raises(NotFoundError):
        resolver.add_participants("missing-thread", [users["Cid"]])
