from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class UploadResponseModel(BaseModel):
    message: str
    url: str
    path: str


# List uploads
class StoredFile(BaseModel):
    name: str
    path: str
    url: str
    created_at: Optional[datetime] = None
    size: Optional[int] = None
    content_type: Optional[str] = None


class ListUploadsResponseModel(BaseModel):
    files: List[StoredFile]


# Delete upload
class DeleteUploadModel(BaseModel):
    path: str = Field(min_length=1)
    bucket: Optional[str] = None


class DeleteUploadResponseModel(BaseModel):
    message: str
