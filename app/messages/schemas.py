from pydantic import BaseModel
from uuid import UUID
from typing import List, Optional

from app.chat.schemas import Message


# Send message
class SendMessageModel(BaseModel):
    thread_id: UUID
    message_content: Optional[str] = None


class SendMessageResponseModel(BaseModel):
    message: str
    messageData: Message


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[Message]


class GetMessageResponseModel(BaseModel):
    message: Message


# Edit message
class UpdateMessageModel(BaseModel):
    message_content: Optional[str] = None


# Delete message
class DeleteMessageResponseModel(BaseModel):
    message_deleted: bool
