"""Error taxonomy for render service calls."""


class RenderFlowError(Exception):
    """Base class for all client-side render errors."""


class InvalidRequestError(RenderFlowError):
    """Rejected locally, before any network call was made."""


class BackendRejectedError(RenderFlowError):
    """The backend answered with a well-formed non-2xx response.

    `message` is the backend's own text and is never rewritten.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class BackendUnreachableError(RenderFlowError):
    """Timeout, connection failure or any other transport-level failure."""


class FallbackStorageError(RenderFlowError):
    """The secondary object store failed while a fallback was being taken."""
