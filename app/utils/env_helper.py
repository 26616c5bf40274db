import os
from typing import Callable, TypeVar

from dotenv import load_dotenv

load_dotenv()

T = TypeVar("T")


def _raw(name: str):
    """The variable's value, or None when unset, blank or the literal "none"."""
    value = os.getenv(name)
    if value is None or value.strip() == "" or value.strip().lower() == "none":
        return None
    return value.strip()


def _parsed(name: str, default: T, parse: Callable[[str], T]) -> T:
    value = _raw(name)
    if value is None:
        return default
    try:
        return parse(value)
    except ValueError:
        raise RuntimeError(f"Invalid value for {name}: {value!r}")


def env_bool(name: str, default: bool = False) -> bool:
    value = _raw(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def env_none_or_str(name: str, default=None):
    value = _raw(name)
    return default if value is None else value


def env_int(name: str, default: int) -> int:
    return _parsed(name, default, int)


def env_float(name: str, default: float) -> float:
    return _parsed(name, default, float)


def env_list(name: str, default: list[str]) -> list[str]:
    """Comma separated values, blanks dropped."""
    value = _raw(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]
