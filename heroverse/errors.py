"""
Exception types shared by every generation stage.

Failures are classified once, where the model call fails, and carry an
``ErrorKind`` tag from then on. Callers branch on the exception class, never
on the message text.
"""
from enum import Enum

from google.genai import errors as genai_errors


class ErrorKind(str, Enum):
    AUTH = "auth"
    SAFETY = "safety"
    TIMEOUT = "timeout"
    GENERIC = "generic"


class GenerationError(Exception):
    """Base class for a classified model-call failure."""
    kind = ErrorKind.GENERIC

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message
        # set once the session has raised the credential prompt for this failure
        self.escalated = False


class AuthError(GenerationError):
    """Invalid or missing credential, or permission denied."""
    kind = ErrorKind.AUTH


class SafetyBlockError(GenerationError):
    """Content filtered, model refusal, or abnormal finish reason."""
    kind = ErrorKind.SAFETY


class GenericError(GenerationError):
    """Anything else: transport failure, bad payload, unknown structure."""
    kind = ErrorKind.GENERIC


class ModelTimeoutError(GenericError):
    """The deadline elapsed before the model answered."""
    kind = ErrorKind.TIMEOUT


class ConfigurationError(Exception):
    """Configuration is missing or invalid."""
    pass


class LaunchError(Exception):
    """A launch was requested without its preconditions."""
    pass


AUTH_MARKERS = (
    "api_key",
    "api key not valid",
    "requested entity was not found",
    "permission denied",
    "permission_denied",
    "unauthenticated",
    "403",
)

SAFETY_MARKERS = (
    "safety",
    "blocked",
    "refused",
    "content filtered",
    "prohibited_content",
    "finish reason",
)


def classify_error(exc: BaseException) -> GenerationError:
    """Map any exception raised by a model call to a GenerationError."""
    if isinstance(exc, GenerationError):
        return exc

    message = str(exc)
    lowered = message.lower()

    if isinstance(exc, genai_errors.APIError) and exc.code in (401, 403):
        return AuthError(message)
    if any(marker in lowered for marker in AUTH_MARKERS):
        return AuthError(message)
    if any(marker in lowered for marker in SAFETY_MARKERS):
        return SafetyBlockError(message)
    return GenericError(message or exc.__class__.__name__)
