"""
Error taxonomy shared by the domain services.

- ValidationError: caught before any backend call, shown to the user as-is.
- NotFoundError: a lookup that legitimately matched nothing.
- BackendError: any failed call to the hosted backend (transport or API).
"""


class SwiftLogixError(Exception):
    """Base class for errors raised by the domain services."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SwiftLogixError):
    pass


class NotFoundError(SwiftLogixError):
    pass


class BackendError(SwiftLogixError):
    pass
