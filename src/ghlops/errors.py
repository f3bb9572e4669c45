"""Domain error taxonomy shared by the translator, dispatcher and orchestrator."""

from typing import Iterable, Literal

NetworkReason = Literal["timeout", "unreachable", "refused"]


class AssistantError(Exception):
    """Base class for every error the command pipeline reports to the user."""

    kind = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(AssistantError):
    kind = "auth"


class ScopeError(AssistantError):
    kind = "scope"

    def __init__(self, tool_name: str, scopes: Iterable[str]) -> None:
        self.tool_name = tool_name
        self.scopes = list(scopes)
        required = ", ".join(self.scopes) if self.scopes else "unknown"
        super().__init__(
            f"Access denied for {tool_name}. Required scopes: {required}. "
            "Please check your token permissions."
        )


class RateLimitError(AssistantError):
    kind = "rate_limit"


class NetworkError(AssistantError):
    kind = "network"

    def __init__(self, reason: NetworkReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ValidationError(AssistantError):
    kind = "validation"


class UnknownToolError(AssistantError):
    kind = "unknown_tool"


class ProtocolError(AssistantError):
    kind = "protocol"


class RemoteInternalError(AssistantError):
    kind = "remote_internal"


class PlanningError(AssistantError):
    kind = "planning"

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Invalid tool call format for {tool_name}: {message}")
        self.tool_name = tool_name


def classify_error(exc: BaseException) -> str:
    """Return the taxonomy kind for any exception raised inside the pipeline.

    Domain errors carry their kind. OpenAI SDK errors are matched by type,
    everything else falls back to substring matching on the message.
    """
    if isinstance(exc, AssistantError):
        return exc.kind

    # Imported lazily so the taxonomy stays usable without the SDK loaded.
    import openai

    if isinstance(exc, openai.AuthenticationError):
        return AuthError.kind
    if isinstance(exc, openai.PermissionDeniedError):
        return ScopeError.kind
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError.kind
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return NetworkError.kind
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return NetworkError.kind

    text = str(exc).lower()
    if "authentication" in text or "token" in text or "api key" in text:
        return AuthError.kind
    if "rate limit" in text:
        return RateLimitError.kind
    if "network" in text or "timeout" in text or "timed out" in text:
        return NetworkError.kind
    return AssistantError.kind
