from enum import Enum
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from app.chat.schemas import Profile


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Connection(BaseModel):
    connection_id: str
    user_id_1: str
    user_id_2: str
    requester_id: str
    status: ConnectionStatus
    created_at: datetime


# Create connection
class CreateConnectionModel(BaseModel):
    user_id_2: UUID


class ConnectionResponseModel(BaseModel):
    message: str
    connection: Connection


# List connections
class GetConnectionsResponseModel(BaseModel):
    connections: List[Connection]


# Pending requests
class PendingRequest(Connection):
    requester: Optional[Profile] = None


class PendingRequestsResponseModel(BaseModel):
    requests: List[PendingRequest]


# Reject / delete
class RejectConnectionResponseModel(BaseModel):
    request_rejected: bool


class DeleteConnectionResponseModel(BaseModel):
    connection_deleted: bool
