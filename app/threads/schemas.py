from pydantic import BaseModel, Field
from uuid import UUID
from typing import List, Optional

from app.chat.schemas import ThreadType, ThreadView


# Create thread
class CreateThreadModel(BaseModel):
    participant_ids: List[UUID] = Field(min_length=1)
    group_name: Optional[str] = Field(default=None, max_length=100)
    thread_type: Optional[ThreadType] = None


class CreateThreadResponseModel(BaseModel):
    message: str
    thread: ThreadView


# Direct thread
class CreateDirectThreadModel(BaseModel):
    participant_id: UUID


# Get threads
class GetThreadsResponseModel(BaseModel):
    threads: List[ThreadView]


class GetThreadResponseModel(BaseModel):
    thread: ThreadView


# Update thread
class UpdateThreadModel(BaseModel):
    group_name: Optional[str] = Field(default=None, max_length=100)
    group_image: Optional[str] = None


# Add participants
class AddParticipantsModel(BaseModel):
    user_ids: List[UUID] = Field(min_length=1)


# Delete thread
class DeleteThreadResponseModel(BaseModel):
    thread_deleted: bool
