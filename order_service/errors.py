class OrderServiceError(Exception):
    """Base error; the HTTP layer renders it as {success: false, message}."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(OrderServiceError):
    status_code = 401


class InvalidInput(OrderServiceError):
    status_code = 400


class OrderNotFound(OrderServiceError):
    status_code = 404


class InvalidTransition(OrderServiceError):
    status_code = 409


class GatewayError(OrderServiceError):
    status_code = 500


class PersistenceError(OrderServiceError):
    status_code = 500


class WebhookVerificationError(OrderServiceError):
    status_code = 400
