class PipelineError(Exception):
    """Base class for every error raised by the notes pipeline."""


class TransportFailure(PipelineError):
    """An external call could not complete (network error, HTTP error, timeout)."""


class MalformedResponse(PipelineError):
    """An external call completed but its payload failed shape validation."""

    def __init__(self, message: str, raw: object = None) -> None:
        super().__init__(message)
        self.raw = raw


class ValidationRejection(PipelineError):
    """Local policy rejected an otherwise well-formed response."""


class ConfigurationError(PipelineError):
    """A required capability or credential is missing."""


class InvalidTransition(PipelineError):
    pass


class LockedFieldError(PipelineError):
    pass


class UnknownNoteError(PipelineError, KeyError):
    def __str__(self) -> str:
        return Exception.__str__(self)
