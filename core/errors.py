from __future__ import annotations


class ValidationError(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class IncompleteRequest(ValueError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Your request is missing required fields: {', '.join(self.missing)}")


class ExternalApiError(RuntimeError):
    """Failure reported by one of the HTTP collaborators.

    ``status`` is the HTTP status when the service answered, ``None`` for
    connection-level failures.
    """

    def __init__(self, service: str, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.service = service
        self.status = status

    @property
    def is_client_error(self) -> bool:
        if self.status is None:
            return False
        return 400 <= self.status < 500 and self.status not in {408, 429}


class ServiceUnavailable(RuntimeError):
    def __init__(self, service_name: str, attempts: int) -> None:
        super().__init__(f"{service_name} service unavailable after {attempts} attempts")
        self.service_name = service_name
        self.attempts = attempts


class FileAttachmentError(RuntimeError):
    def __init__(self, file_id: str, reason: str) -> None:
        super().__init__(f"file {file_id} could not be attached: {reason}")
        self.file_id = file_id
        self.reason = reason


class WorkflowFailure(RuntimeError):
    pass
