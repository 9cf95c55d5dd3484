"""Domain error taxonomy shared by every module.

Each module subclasses these with its own default message and code; the
global handler in ``coursehub.main`` renders any ``DomainError`` as the
``{"success": false, "message": ..., "code": ...}`` envelope.
"""


class DomainError(Exception):
    """Base error for business rule violations."""

    def __init__(self, message: str, code: str = "domain_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(DomainError):
    """Referenced entity does not exist."""

    def __init__(self, message: str = "Not found", code: str = "not_found"):
        super().__init__(message, code)


class UnauthorizedError(DomainError):
    """Caller lacks the role or ownership the operation needs."""

    def __init__(
        self, message: str = "Unauthorized Access", code: str = "unauthorized"
    ):
        super().__init__(message, code)


class NotEnrolledError(DomainError):
    """Operation requires an enrollment the user does not have."""

    def __init__(
        self,
        message: str = "User has not purchased this course",
        code: str = "not_enrolled",
    ):
        super().__init__(message, code)


class InvalidInputError(DomainError):
    """Request data violates a business rule."""

    def __init__(self, message: str = "Invalid input", code: str = "invalid_input"):
        super().__init__(message, code)


class InvalidVideoUrlError(InvalidInputError):
    """Lecture URL is not a supported video host."""

    def __init__(
        self,
        message: str = "Invalid video URL. Only YouTube and Vimeo URLs are supported",
    ):
        super().__init__(message, "invalid_video_url")


class PaymentGatewayError(DomainError):
    """Payment processor call failed."""

    def __init__(self, message: str = "Payment gateway error"):
        super().__init__(message, "payment_gateway_error")


class AuthenticityError(DomainError):
    """Webhook payload failed signature verification."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, "authenticity_error")


class IdentityProviderError(DomainError):
    """Identity provider call failed."""

    def __init__(self, message: str = "Identity provider unavailable"):
        super().__init__(message, "identity_provider_error")


class MediaUploadError(DomainError):
    """Media storage upload failed or the file was rejected."""

    def __init__(
        self, message: str = "Media upload failed", code: str = "upload_error"
    ):
        super().__init__(message, code)
