from typing import Any, Dict


class APIError(Exception):
    """Error surfaced to the HTTP caller as a JSON body."""

    def __init__(self, status_code: int, cause: Any, message: str):
        self.status_code = status_code
        self.cause = str(cause)
        self.message = message
        super().__init__(f"api error: {status_code} - {self.cause}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "error": self.cause,
            "message": self.message,
        }


def invalid_json(cause: Any) -> APIError:
    return APIError(400, cause, "Failed to decode JSON")


def method_not_allowed(expected: str) -> APIError:
    return APIError(405, "method not allowed", f"Only {expected} requests are accepted.")


class ConfigurationError(Exception):
    pass


class StorageError(Exception):
    """Raised when the storage collaborator fails."""


class EventError(Exception):
    """Base class for failures while processing a single webhook event."""


class MalformedPayloadError(EventError):
    pass


class UnhandledEventTypeError(EventError):
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"no handler registered for event type: {event_type!r}")


class EventValidationError(EventError):
    def __init__(self, event_type: str, field: str, reason: str):
        self.event_type = event_type
        self.field = field
        super().__init__(f"validation error for {event_type} event: {reason}")
