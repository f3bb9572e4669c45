import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Role = Literal["user", "assistant"]
MessageStatus = Literal["success", "error", "info"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ToolInvocation:
    """A named, parameterized request proposed by the planner."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    required_scopes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "arguments": self.arguments,
            "requiredScopes": list(self.required_scopes),
        }


@dataclass(frozen=True)
class ToolOutcome:
    """Result of executing one ToolInvocation: a result or an error, never both."""

    name: str
    arguments: Dict[str, Any]
    required_scopes: List[str]
    success: bool
    result: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    execution_time_ms: float = 0.0

    def __post_init__(self) -> None:
        if self.success != (self.error is None):
            raise ValueError("ToolOutcome.success must be True exactly when error is None")

    @classmethod
    def succeeded(cls, invocation: ToolInvocation, result: Any, execution_time_ms: float) -> "ToolOutcome":
        return cls(
            name=invocation.name,
            arguments=invocation.arguments,
            required_scopes=list(invocation.required_scopes),
            success=True,
            result=result,
            execution_time_ms=execution_time_ms,
        )

    @classmethod
    def failed(
        cls,
        invocation: ToolInvocation,
        error: str,
        error_kind: str,
        execution_time_ms: float,
    ) -> "ToolOutcome":
        return cls(
            name=invocation.name,
            arguments=invocation.arguments,
            required_scopes=list(invocation.required_scopes),
            success=False,
            error=error,
            error_kind=error_kind,
            execution_time_ms=execution_time_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "arguments": self.arguments,
            "requiredScopes": list(self.required_scopes),
            "success": self.success,
            "executionTimeMs": self.execution_time_ms,
        }
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error
            data["errorKind"] = self.error_kind
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolOutcome":
        success = bool(data.get("success"))
        return cls(
            name=data.get("name", ""),
            arguments=dict(data.get("arguments") or {}),
            required_scopes=list(data.get("requiredScopes") or []),
            success=success,
            result=data.get("result") if success else None,
            error=None if success else str(data.get("error") or "Unknown error"),
            error_kind=None if success else data.get("errorKind"),
            execution_time_ms=float(data.get("executionTimeMs", 0.0)),
        )


@dataclass(frozen=True)
class MessageMetrics:
    total_actions: int
    successful_actions: int
    execution_time_ms: float


@dataclass(frozen=True)
class Message:
    """One entry of the chat log shown to the user."""

    role: Role
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=utc_now_iso)
    status: Optional[MessageStatus] = None
    tool_calls: Optional[List[ToolOutcome]] = None
    metrics: Optional[MessageMetrics] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "role": self.role,
            "content": self.content,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.tool_calls is not None:
            data["toolCalls"] = [o.to_dict() for o in self.tool_calls]
        if self.metrics is not None:
            data["metrics"] = {
                "totalActions": self.metrics.total_actions,
                "successfulActions": self.metrics.successful_actions,
                "executionTimeMs": self.metrics.execution_time_ms,
            }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        metrics = data.get("metrics")
        tool_calls = data.get("toolCalls")
        return cls(
            id=str(data["id"]),
            timestamp=str(data.get("timestamp") or utc_now_iso()),
            role=data.get("role") or data.get("type") or "assistant",
            content=str(data.get("content") or ""),
            status=data.get("status"),
            tool_calls=[ToolOutcome.from_dict(t) for t in tool_calls] if tool_calls is not None else None,
            metrics=MessageMetrics(
                total_actions=int(metrics.get("totalActions", 0)),
                successful_actions=int(metrics.get("successfulActions", 0)),
                execution_time_ms=float(metrics.get("executionTimeMs", 0.0)),
            )
            if metrics
            else None,
            error=data.get("error"),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Conversation turn kept in memory and replayed into prompts."""

    role: Role
    content: Optional[str]
    tool_calls: Optional[List[ToolInvocation]] = None
    timestamp: str = field(default_factory=utc_now_iso)


@dataclass
class UserContext:
    recent_contacts: List[Dict[str, Any]] = field(default_factory=list)
    active_opportunities: List[Dict[str, Any]] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)
    common_patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recentContacts": self.recent_contacts,
            "activeOpportunities": self.active_opportunities,
            "preferences": self.preferences,
            "commonPatterns": self.common_patterns,
        }


@dataclass
class PerformanceMetrics:
    """Running command statistics; the average is a weighted running mean."""

    total_commands: int = 0
    successful_commands: int = 0
    average_response_time_ms: float = 0.0
    last_command_time_ms: Optional[float] = None

    def record(self, response_time_ms: float, success: bool) -> None:
        new_total = self.total_commands + 1
        self.average_response_time_ms = (
            self.average_response_time_ms * self.total_commands + response_time_ms
        ) / new_total
        self.total_commands = new_total
        self.successful_commands += 1 if success else 0
        self.last_command_time_ms = response_time_ms

    @property
    def success_rate(self) -> float:
        if self.total_commands == 0:
            return 0.0
        return self.successful_commands / self.total_commands

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCommands": self.total_commands,
            "successfulCommands": self.successful_commands,
            "averageResponseTimeMs": self.average_response_time_ms,
            "lastCommandTimeMs": self.last_command_time_ms,
            "successRate": self.success_rate,
        }


@dataclass
class RuntimeConfig:
    """User-supplied credentials and toggles, persisted by the state service."""

    ghl_token: str = ""
    location_id: str = ""
    openai_api_key: str = ""
    voice_enabled: bool = True
    auto_confirm: bool = False
    theme: str = "dark"

    @property
    def is_configured(self) -> bool:
        return bool(self.ghl_token and self.openai_api_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ghlToken": self.ghl_token,
            "locationId": self.location_id,
            "openaiApiKey": self.openai_api_key,
            "voiceEnabled": self.voice_enabled,
            "autoConfirm": self.auto_confirm,
            "theme": self.theme,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: Optional["RuntimeConfig"] = None) -> "RuntimeConfig":
        base = defaults or cls()
        return cls(
            ghl_token=str(data.get("ghlToken", base.ghl_token) or ""),
            location_id=str(data.get("locationId", base.location_id) or ""),
            openai_api_key=str(data.get("openaiApiKey", base.openai_api_key) or ""),
            voice_enabled=bool(data.get("voiceEnabled", base.voice_enabled)),
            auto_confirm=bool(data.get("autoConfirm", base.auto_confirm)),
            theme=str(data.get("theme", base.theme) or base.theme),
        )

    def redacted(self) -> Dict[str, Any]:
        return {
            "hasGhlToken": bool(self.ghl_token),
            "hasOpenaiKey": bool(self.openai_api_key),
            "locationId": self.location_id,
        }


@dataclass(frozen=True)
class Credentials:
    """Per-call credentials for the business-system endpoint."""

    token: str
    location_id: Optional[str] = None
