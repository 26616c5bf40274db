"""
Error taxonomy shared by the chat, connection and upload services.

Services raise these instead of `HTTPException` so the same rules apply
whether they are called from a route, a websocket or a test. `app.main`
turns them into `{"error": <category>, "detail": <message>}` responses.
"""


class LineUpError(Exception):
    category = "internal_error"
    status_code = 500

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def describe(self) -> str:
        """Message plus `key=value` context, for log lines."""
        details = " ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} {details}".strip()


class NotFoundError(LineUpError):
    category = "not_found"
    status_code = 404


class UnauthorizedError(LineUpError):
    category = "unauthorized"
    status_code = 403


class ValidationError(LineUpError):
    category = "validation_error"
    status_code = 400


class StoreUnavailableError(LineUpError):
    category = "store_unavailable"
    status_code = 500


class PartialCreationError(LineUpError):
    """A thread row was written but its participants were not."""

    category = "partial_creation_failure"
    status_code = 500
