class InventoryError(Exception):
    """Raised when a request cannot be processed."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(InventoryError):
    status_code = 400


class UnauthorizedError(InventoryError):
    status_code = 401


class ForbiddenError(InventoryError):
    status_code = 403


class NotFoundError(InventoryError):
    status_code = 404
