"""
Domain errors raised by services and views.

Each error carries the HTTP status it maps to. ApiExceptionMiddleware turns
them into ``{"error": message}`` JSON responses.
"""


class NetworkError(Exception):
    status_code = 500
    default_message = "An internal server error occurred."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(NetworkError):
    status_code = 400
    default_message = "The request is invalid."


class ContentRejected(ValidationFailed):
    default_message = (
        "Your content contains inappropriate terms (insults, hate speech, etc.). "
        "Please reformulate."
    )


class AuthenticationFailed(NetworkError):
    status_code = 401
    default_message = "You are not authenticated."


class Forbidden(NetworkError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(NetworkError):
    status_code = 404
    default_message = "The requested resource was not found."


class Conflict(NetworkError):
    status_code = 409
    default_message = "This action conflicts with the current state."
