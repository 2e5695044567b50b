"""Passepartout engine: agent process, session, event stream and data model."""
from .models import (
    BrowserCheckResult,
    CredentialStatus,
    ExecutionLog,
    ExecutionLogEntry,
    ModelOption,
    PromptRequest,
    PromptResult,
    Session,
    StatusDetails,
    StatusKind,
    StatusUpdate,
)
from .config import BridgeConfig
from .errors import (
    AuthError,
    BridgeError,
    ConcurrentPromptError,
    ConfigError,
    CredentialError,
    ModelRejectedError,
    ProcessStartError,
    PromptError,
    SessionCreateError,
    StreamDecodeError,
    StreamTerminatedError,
    UnknownProviderError,
)

__all__ = [
    # Models
    "BrowserCheckResult",
    "CredentialStatus",
    "ExecutionLog",
    "ExecutionLogEntry",
    "ModelOption",
    "PromptRequest",
    "PromptResult",
    "Session",
    "StatusDetails",
    "StatusKind",
    "StatusUpdate",
    # Config
    "BridgeConfig",
    "load_yaml_config",
    # Runtime (lazy import)
    "AgentProcessManager",
    "SessionHandle",
    "EventStreamConsumer",
    "ModelCatalog",
    # Errors
    "AuthError",
    "BridgeError",
    "ConcurrentPromptError",
    "ConfigError",
    "CredentialError",
    "ModelRejectedError",
    "ProcessStartError",
    "PromptError",
    "SessionCreateError",
    "StreamDecodeError",
    "StreamTerminatedError",
    "UnknownProviderError",
]


def __getattr__(name: str):
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "AgentProcessManager":
        from .process import AgentProcessManager
        return AgentProcessManager
    if name == "SessionHandle":
        from .session import SessionHandle
        return SessionHandle
    if name == "EventStreamConsumer":
        from .stream import EventStreamConsumer
        return EventStreamConsumer
    if name == "ModelCatalog":
        from .model_registry import ModelCatalog
        return ModelCatalog
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
