from fastapi import APIRouter, Depends

from app.core.dependencies import get_current_user_id, optional_user_id

from .service import ConnectionService, get_connection_service
from .schemas import (
    ConnectionResponseModel,
    CreateConnectionModel,
    DeleteConnectionResponseModel,
    GetConnectionsResponseModel,
    PendingRequestsResponseModel,
    RejectConnectionResponseModel,
)


router = APIRouter()


@router.get("", response_model=GetConnectionsResponseModel, status_code=200)
def get_my_connections(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """
    Retrieve the authenticated user's accepted connections, newest first.
    """
    return {"connections": service.list_accepted(user_id)}


@router.get(
    "/requests/pending", response_model=PendingRequestsResponseModel, status_code=200
)
def get_pending_requests(
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """
    Pending connection requests received by the authenticated user.

    Requests the user sent are not included. Each request carries the
    requester's profile (`displayname`, `user_image`) when it exists.
    """
    return {"requests": service.pending_requests(user_id)}


@router.get(
    "/user/{user_id}", response_model=GetConnectionsResponseModel, status_code=200
)
def get_user_connections(
    user_id: str,
    viewer_id=Depends(optional_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """All connections of any user, in any status. Authentication optional."""
    return {"connections": service.list_for_user(user_id)}


@router.post("", response_model=ConnectionResponseModel, status_code=201)
def create_connection(
    data: CreateConnectionModel,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """
    Send a connection request to another user.

    The pair is stored in canonical order (`user_id_1 < user_id_2`) so there
    is exactly one row per pair no matter who asked first.

    **Input**
    - `user_id_2`: the user to connect with

    **Errors**
    - 400: Connecting with yourself, or a connection already exists
    - 404: No such user
    - 500: Database error
    """
    connection = service.request(user_id, str(data.user_id_2))
    return {"message": "Connection created successfully", "connection": connection}


@router.patch(
    "/{connection_id}/accept", response_model=ConnectionResponseModel, status_code=200
)
def accept_connection(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """
    Accept a pending request. Only the recipient (never the requester) can.

    **Errors**
    - 400: Request is not pending
    - 403: Caller is the requester or not part of the pair
    - 404: No such connection
    """
    connection = service.accept(connection_id, user_id)
    return {"message": "Connection request accepted", "connection": connection}


@router.patch(
    "/{connection_id}/reject",
    response_model=RejectConnectionResponseModel,
    status_code=200,
)
def reject_connection(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """Reject (and delete) a pending request. Same rules as accept."""
    service.reject(connection_id, user_id)
    return {"request_rejected": True}


@router.delete(
    "/{connection_id}", response_model=DeleteConnectionResponseModel, status_code=200
)
def delete_connection(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """Remove a connection. Either side of the pair can do this."""
    service.remove(connection_id, user_id)
    return {"connection_deleted": True}
