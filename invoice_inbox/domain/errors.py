class InboxError(Exception):
    """
    Base class for errors reported to API callers.
    The message is returned verbatim as {"error": message}.
    """
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InboxError):
    """Missing or blank required field."""
    status_code = 400


class NotFound(InboxError):
    """Unknown id or access outside the organization scope."""
    status_code = 404


class ConflictError(InboxError):
    """Duplicate tag label, tag still in use, or a refused status transition."""
    status_code = 409


class TransientIOError(InboxError):
    """Reading or writing the JSON document failed."""
    status_code = 500
