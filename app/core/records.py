import logging
from typing import Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_record(model: Type[M], row: dict, operation: str) -> M:
    """Validate one store row, reporting a malformed row as a store failure."""
    try:
        return model.model_validate(row)
    except ValidationError as error:
        logger.error(
            f"store_row_invalid operation={operation} model={model.__name__} "
            f"errors={error.error_count()}"
        )
        raise StoreUnavailableError(
            "The data store returned an unexpected row.",
            operation=operation,
        ) from error


def parse_records(model: Type[M], rows: Iterable[dict], operation: str) -> List[M]:
    return [parse_record(model, row, operation) for row in rows or []]


def parse_first(model: Type[M], rows: Optional[list], operation: str) -> M:
    """The row a write returned. An empty result means the write hit nothing."""
    if not rows:
        logger.error(f"store_row_missing operation={operation} model={model.__name__}")
        raise StoreUnavailableError(
            "The data store returned no row.", operation=operation
        )
    return parse_record(model, rows[0], operation)
