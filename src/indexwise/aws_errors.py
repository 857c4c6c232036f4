from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from botocore.exceptions import ClientError

from .errors import ConditionFailedError

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def is_condition_failure(err: ClientError) -> bool:
    return error_code(err) == CONDITIONAL_CHECK_FAILED


@contextmanager
def translate_condition_failures(operation: str) -> Iterator[None]:
    """Raise ``ConditionFailedError`` for failed conditional writes.

    Every other store or transport error is re-raised unchanged.
    """
    try:
        yield
    except ClientError as err:
        if not is_condition_failure(err):
            raise
        message = str(err.response.get("Error", {}).get("Message", "")) or "the conditional request failed"
        raise ConditionFailedError(message, operation=operation) from err
