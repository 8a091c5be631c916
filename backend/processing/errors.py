class LoginFlowError(Exception):
    """Base class for recoverable login flow failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LoginFlowError):
    """The caller misused the flow: empty input, wrong pick count, wrong step."""


class ServiceError(LoginFlowError):
    """A collaborator answered with a non-success or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
