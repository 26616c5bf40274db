from enum import Enum
from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel


class ThreadType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class ParticipantRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


# Store records
class Thread(BaseModel):
    thread_id: str
    thread_type: ThreadType
    # NULL once the creator's profile is deleted
    created_by_user_id: Optional[str] = None
    created_at: datetime
    group_name: Optional[str] = None
    group_image: Optional[str] = None


class ThreadParticipant(BaseModel):
    thread_id: str
    user_id: str
    role: ParticipantRole = ParticipantRole.MEMBER
    joined_at: datetime


class Message(BaseModel):
    message_id: str
    thread_id: str
    # NULL once the sender's profile is deleted
    user_id: Optional[str] = None
    message_content: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class Profile(BaseModel):
    id: str
    displayname: Optional[str] = None
    user_image: Optional[str] = None


# Views
class ParticipantView(BaseModel):
    user_id: str
    role: ParticipantRole
    joined_at: datetime
    displayname: str
    user_image: Optional[str] = None


class ThreadView(BaseModel):
    thread_id: str
    thread_type: ThreadType
    created_by_user_id: Optional[str] = None
    created_at: datetime
    group_name: Optional[str] = None
    group_image: Optional[str] = None
    title: str
    participants: List[ParticipantView]
