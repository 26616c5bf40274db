from typing import Optional

from fastapi import APIRouter, Depends

from app.chat.schemas import ThreadType
from app.chat.service import ChatService, get_chat_service
from app.core.dependencies import get_current_user_id, optional_user_id

from .schemas import (
    AddParticipantsModel,
    CreateDirectThreadModel,
    CreateThreadModel,
    CreateThreadResponseModel,
    DeleteThreadResponseModel,
    GetThreadResponseModel,
    GetThreadsResponseModel,
    UpdateThreadModel,
)


router = APIRouter()


@router.get("", response_model=GetThreadsResponseModel, status_code=200)
def get_my_threads(
    kind: Optional[ThreadType] = None,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Retrieve every thread the authenticated user participates in.

    Used to populate the chat list. Threads are returned newest first. The
    `thread_type` of each entry is computed from its current participant
    count, so a direct chat that had people added shows up as a group even
    if the stored type lags behind.

    **Query**
    - `kind`: optional `direct` or `group` filter

    **Returns**
    - `threads`: thread objects with `title`, `participants` and type

    **Errors**
    - 401: Invalid or expired token
    - 500: Database error
    """
    return {"threads": service.list_user_threads(user_id, kind)}


@router.post("", response_model=CreateThreadResponseModel, status_code=201)
def create_thread(
    data: CreateThreadModel,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Create a thread with the authenticated user and `participant_ids`.

    With a single participant (and no explicit `thread_type: "group"`) the
    existing direct thread between the two users is returned instead of
    creating a duplicate. Otherwise a new group is created with the caller
    as `admin`; groups are never reused, even for identical members.

    **Input**
    - `participant_ids`: user ids, excluding the creator
    - `group_name`: optional name, groups only
    - `thread_type`: optional `direct` / `group`

    **Errors**
    - 400: Missing participants or inconsistent `thread_type`
    - 404: A participant does not exist
    - 500: Database error (a half-created thread is rolled back)
    """
    thread = service.create_thread(
        user_id,
        [str(pid) for pid in data.participant_ids],
        group_name=data.group_name,
        thread_type=data.thread_type,
    )
    return {"message": "Thread created successfully", "thread": thread}


@router.post("/direct", response_model=GetThreadResponseModel, status_code=200)
def get_or_create_direct_thread(
    data: CreateDirectThreadModel,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Get or create the direct (1-on-1) thread with another user.

    Used when a user clicks "Message" on someone's profile. Calling it again,
    or calling it from the other side, returns the same thread.

    **Errors**
    - 400: `participant_id` is the caller
    - 404: No such user
    - 500: Database error
    """
    thread = service.start_direct_thread(user_id, str(data.participant_id))
    return {"thread": thread}


@router.get("/{thread_id}", response_model=GetThreadResponseModel, status_code=200)
def get_thread(
    thread_id: str,
    user_id: Optional[str] = Depends(optional_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Retrieve a thread with its participants.

    Authentication is optional; when a valid token is sent the `title` is
    computed from the caller's point of view.

    **Errors**
    - 404: Thread not found
    """
    return {"thread": service.get_thread(thread_id, user_id)}


@router.put("/{thread_id}", response_model=GetThreadResponseModel, status_code=200)
def update_thread(
    thread_id: str,
    data: UpdateThreadModel,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Rename a thread or change its picture. Participants only.

    **Errors**
    - 400: Neither `group_name` nor `group_image` sent
    - 403: Caller is not a participant
    - 404: Thread not found
    """
    thread = service.update_thread(
        thread_id, user_id, group_name=data.group_name, group_image=data.group_image
    )
    return {"thread": thread}


@router.post(
    "/{thread_id}/participants", response_model=GetThreadResponseModel, status_code=200
)
def add_participants(
    thread_id: str,
    data: AddParticipantsModel,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Add people to a thread. A direct thread becomes a group.

    **Errors**
    - 400: Everyone listed is already a participant
    - 403: Caller is not a participant
    - 404: Thread or user not found
    """
    thread = service.add_participants(
        thread_id, user_id, [str(uid) for uid in data.user_ids]
    )
    return {"thread": thread}


@router.delete(
    "/{thread_id}", response_model=DeleteThreadResponseModel, status_code=200
)
def delete_thread(
    thread_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Delete a thread together with its messages and participants.

    **Errors**
    - 403: Caller is not a participant
    - 404: Thread not found
    """
    service.delete_thread(thread_id, user_id)
    return {"thread_deleted": True}
