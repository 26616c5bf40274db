import asyncio
import logging

import jwt
from fastapi import APIRouter, Depends, WebSocket, status
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from app.chat.schemas import Message
from app.chat.service import ChatService, get_chat_service
from app.core.dependencies import decode_token, get_current_user_id
from app.core.errors import LineUpError

from .schemas import (
    DeleteMessageResponseModel,
    GetMessageResponseModel,
    GetMessagesResponseModel,
    SendMessageModel,
    SendMessageResponseModel,
    UpdateMessageModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/thread/{thread_id}", response_model=GetMessagesResponseModel, status_code=200
)
def get_thread_messages(
    thread_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Retrieve all messages of a thread, oldest first.

    Ordering is by `created_at`; edits never move a message.

    **Errors**
    - 403: Caller is not a participant
    - 404: Thread not found
    """
    return {"messages": service.list_messages(thread_id, user_id)}


@router.get("/{message_id}", response_model=GetMessageResponseModel, status_code=200)
def get_message(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    return {"message": service.get_message(message_id, user_id)}


@router.post("", response_model=SendMessageResponseModel, status_code=201)
def send_message(
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Send a message to a thread the user participates in.

    The stored message is also pushed to every realtime subscriber of the
    thread, including the sender's own socket; clients that already applied
    the message optimistically drop the duplicate by `message_id`.

    **Input**
    - `thread_id`: UUID of the thread
    - `message_content`: non-empty text

    **Errors**
    - 400: Empty `message_content`
    - 403: Caller is not a participant
    - 404: Thread not found
    - 500: Database error
    """
    message = service.send_message(str(data.thread_id), user_id, data.message_content)
    return {"message": "Message sent successfully", "messageData": message}


@router.put("/{message_id}", response_model=GetMessageResponseModel, status_code=200)
def update_message(
    message_id: str,
    data: UpdateMessageModel,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Edit the text of a message. Only the sender can edit.

    **Errors**
    - 400: Empty `message_content`
    - 403: Caller is not the sender
    - 404: Message not found
    """
    return {"message": service.edit_message(message_id, user_id, data.message_content)}


@router.delete(
    "/{message_id}", response_model=DeleteMessageResponseModel, status_code=200
)
def delete_message(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """
    Delete a message. Only the sender can delete.

    **Errors**
    - 403: Caller is not the sender
    - 404: Message not found
    """
    service.delete_message(message_id, user_id)
    return {"message_deleted": True}


@router.websocket("/thread/{thread_id}/ws")
async def stream_thread_messages(
    websocket: WebSocket,
    thread_id: str,
    token: str = "",
    service: ChatService = Depends(get_chat_service),
):
    """
    Realtime feed of a thread.

    Browsers cannot set headers on websockets, so the access token travels
    in the `token` query parameter. The first frame is the thread history,
    every later frame is one new message. Frames sent by the client are
    ignored.
    """
    try:
        user_id = str(decode_token(token)["sub"])
    except jwt.InvalidTokenError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        await run_in_threadpool(service.require_participant, thread_id, user_id)
    except LineUpError as error:
        logger.warning(
            f"realtime_rejected thread_id={thread_id} user_id={user_id} reason={error.category}"
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[Message] = asyncio.Queue()

    try:
        unsubscribe = await run_in_threadpool(
            service.store.subscribe_to_new_messages,
            thread_id,
            lambda message: loop.call_soon_threadsafe(queue.put_nowait, message),
        )
    except LineUpError as error:
        logger.error(
            f"realtime_unavailable thread_id={thread_id} user_id={user_id} reason={error.category}"
        )
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        # Read after subscribing so no insert falls between the two.
        history = await run_in_threadpool(service.list_messages, thread_id, user_id)

        await websocket.accept()
        await websocket.send_json(
            {"type": "history", "messages": jsonable_encoder(history)}
        )
        delivered = {message.message_id for message in history}

        async def forward_new_messages():
            while True:
                message = await queue.get()
                if message.message_id in delivered:
                    continue
                delivered.add(message.message_id)
                await websocket.send_json(
                    {"type": "message", "message": jsonable_encoder(message)}
                )

        sender = asyncio.create_task(forward_new_messages())
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
        finally:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception(
                    f"realtime_send_failed thread_id={thread_id} user_id={user_id}"
                )
        logger.info(f"realtime_disconnected thread_id={thread_id} user_id={user_id}")

    finally:
        await run_in_threadpool(unsubscribe)
