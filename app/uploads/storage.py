import logging
from abc import ABC, abstractmethod
from typing import List

from storage3.utils import StorageException
from supabase import Client

from app.core.errors import StoreUnavailableError
from app.core.retry import execute_with_retry
from app.core.supabase_client import get_supabase

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    @abstractmethod
    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """Store `content` at `path` and return the stored path."""

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str: ...

    @abstractmethod
    def delete(self, bucket: str, paths: List[str]) -> None: ...

    @abstractmethod
    def list(self, bucket: str, prefix: str) -> List[dict]:
        """Entries directly under `prefix` (`name`, `id`, `created_at`, `metadata`)."""


class SupabaseObjectStore(ObjectStore):
    def __init__(self, client: Client):
        self.client = client

    def _run(self, operation: str, query, idempotent: bool = True):
        try:
            return execute_with_retry(operation, query, idempotent=idempotent)
        except StorageException as error:
            logger.error(f"storage_rejected operation={operation} error={error!r}")
            raise StoreUnavailableError(
                "The file store rejected the request.", operation=operation
            ) from error

    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self._run(
            "upload_object",
            lambda: self.client.storage.from_(bucket).upload(
                path=path,
                file=content,
                file_options={"content-type": content_type, "upsert": "false"},
            ),
            idempotent=False,
        )
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return self.client.storage.from_(bucket).get_public_url(path)

    def delete(self, bucket: str, paths: List[str]) -> None:
        self._run(
            "delete_objects",
            lambda: self.client.storage.from_(bucket).remove(paths),
        )

    def list(self, bucket: str, prefix: str) -> List[dict]:
        entries = self._run(
            "list_objects",
            lambda: self.client.storage.from_(bucket).list(
                prefix, {"sortBy": {"column": "created_at", "order": "desc"}}
            ),
        )
        return list(entries or [])


def get_object_store() -> ObjectStore:
    return SupabaseObjectStore(get_supabase())
