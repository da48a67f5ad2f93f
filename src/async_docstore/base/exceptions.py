from typing import Optional


class RequestException(Exception):
    """Exception raised when a request payload is missing or malformed."""

    def __init__(self, message: str = "The request is missing required input."):
        super().__init__(message)


class ObjectNotFoundException(Exception):
    """Exception raised when a record with the specified identifier does not exist."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class BackendException(Exception):
    """Exception raised when the underlying document store reports a failure."""

    def __init__(
        self,
        message: str = "The document store failed to complete the operation.",
        operation: Optional[str] = None,
        collection: Optional[str] = None,
    ):
        self.operation = operation
        self.collection = collection
        if operation or collection:
            message = f"{message} (operation: {operation}, collection: {collection})"
        super().__init__(message)


class KeyAlreadyExistsException(BackendException):
    """Exception raised when trying to insert a record that would violate a unique constraint."""

    def __init__(
        self,
        message: str = "An object with the same key already exists.",
        operation: Optional[str] = None,
        collection: Optional[str] = None,
    ):
        super().__init__(message, operation, collection)
