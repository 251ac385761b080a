"""
Typed application errors.

Domain code raises these; error_handlers translates them into the
``{"success": false, "message": ...}`` envelope with the matching status.
"""


class AppError(Exception):
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, message=None, status_code=None, payload=None):
        super().__init__(message or self.message)
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        return {"success": False, "message": self.message, **(self.payload or {})}


class ValidationError(AppError):
    status_code = 400
    message = "Validation failed"


class AuthenticationError(AppError):
    status_code = 401
    message = "Authentication required"


class InvalidCredentialsError(AuthenticationError):
    # Same text for unknown email and wrong password
    message = "Invalid email or password"


class InvalidRefreshTokenError(AuthenticationError):
    message = "Invalid refresh token"


class InvalidTokenError(AuthenticationError):
    message = "Invalid or expired token"


class TokenExpiredError(InvalidTokenError):
    pass


class AuthorizationError(AppError):
    status_code = 403
    message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 400
    message = "Resource already exists"


class PaymentProviderError(AppError):
    status_code = 502
    message = "Payment provider request failed"


class WebhookSignatureError(ValidationError):
    message = "Webhook signature verification failed"


class DataIntegrityError(AppError):
    status_code = 500
    message = "Local data is inconsistent with the billing provider"


class UserNotFoundError(DataIntegrityError):
    message = "User not found for subscription"
