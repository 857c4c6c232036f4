from __future__ import annotations

from collections.abc import Callable

from botocore.exceptions import ClientError

from .aws_errors import CONDITIONAL_CHECK_FAILED
from .mocks import ANY, FakeDynamoDBClient, query_page, to_wire


def fixed_clock(start: int, step: int = 0) -> Callable[[], int]:
    """A millisecond clock returning ``start``, ``start + step``, ..."""
    state = {"now": start - step}

    def now() -> int:
        state["now"] += step
        return state["now"]

    return now


def no_sleep(_: float) -> None:
    return None


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


def conditional_check_failed(operation: str = "PutItem") -> ClientError:
    return client_error(CONDITIONAL_CHECK_FAILED, "The conditional request failed", operation)


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "client_error",
    "conditional_check_failed",
    "fixed_clock",
    "no_sleep",
    "query_page",
    "to_wire",
]
