class OrderValidationError(ValueError):
    """Raised before any mutation when a cart or order cannot be checked out."""


class RemoteStoreError(Exception):
    """The remote store was unreachable or answered with a non-success status."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code
