from __future__ import annotations


class TransferError(Exception):
    """Base for failures that end a transfer run with a FAILURE status."""


class LogFileTransportError(TransferError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InventoryInconsistencyError(TransferError):
    pass


class TransferConflictError(RuntimeError):
    pass


class TransferTimeoutError(RuntimeError):
    pass


class UnknownCategoryError(ValueError):
    pass
