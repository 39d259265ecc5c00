class OrderError(Exception):
    """Base error raised by order operations; the message is user facing."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class OrderValidationError(OrderError):
    status_code = 400


class NothingToUpdateError(OrderError):
    status_code = 400

    def __init__(self, message: str = "No fields to update"):
        super().__init__(message)


class OrderPermissionError(OrderError):
    status_code = 403


class OrderNotFoundError(OrderError):
    status_code = 404

    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class OrderConflictError(OrderError):
    status_code = 409
