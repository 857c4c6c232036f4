from __future__ import annotations


class IndexwiseError(Exception):
    pass


class UsageError(IndexwiseError):
    pass


class NotFoundError(IndexwiseError):
    pass


class ConditionFailedError(IndexwiseError):
    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(f"{operation}: {message}" if operation else message)
        self.operation = operation


ConcurrencyConflictError = ConditionFailedError


class ProvisioningError(IndexwiseError):
    pass


class BatchRetryExceededError(IndexwiseError):
    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count
