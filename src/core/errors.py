"""Error taxonomy shared by services, API routes and durable functions.

Every error carries a ``retriable`` flag. The durable function adapter turns
non-retriable errors into terminal failures; retriable ones are re-raised so
the runtime can retry the step.
"""


class WorkflowAppError(Exception):
    """Base exception for application errors."""

    retriable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowAppError):
    """Input failed validation.

    Attributes:
        errors: Field-level messages, e.g. ``["refresh_token: Field required"]``
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(WorkflowAppError):
    """Requested entity does not exist or is not owned by the caller."""

    pass


class ConflictError(WorkflowAppError):
    """Entity already exists."""

    pass


class ReauthenticationRequired(WorkflowAppError):
    """Provider rejected the refresh token; the user must reconnect."""

    def __init__(
        self,
        message: str = "Could not refresh access token. The user may need to re-authenticate.",
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider


class TransientProviderError(WorkflowAppError):
    """Network failure, timeout or 5xx from an external provider."""

    retriable = True


class ProviderRequestError(WorkflowAppError):
    """Provider refused a request for a reason retrying will not fix."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnknownEventName(WorkflowAppError):
    """A schedule fired for an event with no registered handler."""

    def __init__(self, event_name: str) -> None:
        super().__init__(f"No workflow handler registered for event '{event_name}'")
        self.event_name = event_name


def is_retriable(error: BaseException) -> bool:
    """Check whether an error should be retried by the runtime.

    Unknown exceptions are treated as retriable.
    """
    if isinstance(error, WorkflowAppError):
        return error.retriable
    return True
