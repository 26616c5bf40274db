import time
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.core.config import UPLOAD_ALLOWED_TYPES, UPLOAD_BUCKET, UPLOAD_MAX_BYTES
from app.core.dependencies import get_current_user_id
from app.core.errors import UnauthorizedError, ValidationError

from .storage import ObjectStore, get_object_store
from .schemas import (
    DeleteUploadModel,
    DeleteUploadResponseModel,
    ListUploadsResponseModel,
    StoredFile,
    UploadResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/upload", response_model=UploadResponseModel, status_code=200)
def upload_image(
    file: UploadFile = File(...),
    bucket: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    storage: ObjectStore = Depends(get_object_store),
):
    """
    Upload an image (avatars, group pictures, post media) to object storage.

    Files are stored under the uploader's own folder as
    `<user_id>/<epoch_ms>.<ext>`.

    **Input (multipart)**
    - `file`: JPEG, PNG, GIF or WebP, at most 5 MB
    - `bucket`: optional, defaults to `images`

    **Returns**
    - `url`: public URL of the stored file
    - `path`: storage path, needed to delete it later

    **Errors**
    - 400: Wrong file type or file too large
    - 500: Storage error
    """
    if file.content_type not in UPLOAD_ALLOWED_TYPES:
        raise ValidationError(
            "Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.",
            content_type=file.content_type,
        )

    content = file.file.read(UPLOAD_MAX_BYTES + 1)
    if len(content) > UPLOAD_MAX_BYTES:
        raise ValidationError(
            f"File is larger than {UPLOAD_MAX_BYTES // (1024 * 1024)} MB.",
            user_id=user_id,
        )

    # Never taken from the client filename, which may contain path separators.
    extension = UPLOAD_ALLOWED_TYPES[file.content_type]
    bucket = bucket or UPLOAD_BUCKET
    path = f"{user_id}/{int(time.time() * 1000)}.{extension}"

    stored_path = storage.upload(bucket, path, content, file.content_type)
    logger.info(f"file_uploaded user_id={user_id} bucket={bucket} path={stored_path}")

    return {
        "message": "File uploaded successfully",
        "url": storage.get_public_url(bucket, stored_path),
        "path": stored_path,
    }


@router.get("/list", response_model=ListUploadsResponseModel, status_code=200)
def list_images(
    bucket: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    storage: ObjectStore = Depends(get_object_store),
):
    """
    List the files in the authenticated user's own folder, newest first.

    **Query**
    - `bucket`: optional, defaults to `images`

    **Errors**
    - 500: Storage error
    """
    bucket = bucket or UPLOAD_BUCKET
    files = []
    for entry in storage.list(bucket, user_id):
        # Sub-folders come back with a null id
        if entry.get("id") is None:
            continue

        path = f"{user_id}/{entry['name']}"
        metadata = entry.get("metadata") or {}
        files.append(
            StoredFile(
                name=entry["name"],
                path=path,
                url=storage.get_public_url(bucket, path),
                created_at=entry.get("created_at"),
                size=metadata.get("size"),
                content_type=metadata.get("mimetype"),
            )
        )

    return {"files": files}


@router.delete("/delete", response_model=DeleteUploadResponseModel, status_code=200)
def delete_image(
    data: DeleteUploadModel,
    user_id: str = Depends(get_current_user_id),
    storage: ObjectStore = Depends(get_object_store),
):
    """
    Delete a previously uploaded file. Users can only delete their own files.

    **Errors**
    - 403: `path` is outside the caller's folder
    - 500: Storage error
    """
    if not data.path.startswith(f"{user_id}/") or ".." in data.path:
        raise UnauthorizedError(
            "You can only delete your own files.", user_id=user_id, path=data.path
        )

    bucket = data.bucket or UPLOAD_BUCKET
    storage.delete(bucket, [data.path])
    logger.info(f"file_deleted user_id={user_id} bucket={bucket} path={data.path}")

    return {"message": "File deleted successfully"}
