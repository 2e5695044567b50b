"""Exception hierarchy for the agent bridge.

One exception per failure mode. Per-event decode failures and stream
termination are handled inside the bridge; the rest reach the caller.
"""
from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all bridge errors."""


class ConfigError(BridgeError):
    """Configuration file or environment value is invalid."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")


class ProcessStartError(BridgeError):
    """The backend agent could not be started or never became healthy."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to start agent server: {reason}")


class AuthError(BridgeError):
    """The backend rejected the per-run handshake credential."""
    def __init__(self, status: int, url: str):
        self.status = status
        self.url = url
        super().__init__(
            f"Agent server at {url} rejected the handshake credential "
            f"(HTTP {status})"
        )


class SessionCreateError(BridgeError):
    """No session could be created against the backend."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to create session: {reason}")


class PromptError(BridgeError):
    """A prompt call failed before a terminal answer was received."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ModelRejectedError(PromptError):
    """The backend reported the provider/model pair as invalid."""
    def __init__(self, provider_id: str, model_id: str, detail: str = ""):
        self.provider_id = provider_id
        self.model_id = model_id
        self.detail = detail
        reason = f"Model '{provider_id}/{model_id}' was rejected by the agent"
        if detail:
            reason = f"{reason}: {detail}"
        super().__init__(reason)


class ConcurrentPromptError(BridgeError):
    """A prompt is already in flight for this session."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"A prompt is already in progress for session {session_id}"
        )


class StreamDecodeError(BridgeError):
    """A single event record could not be decoded. Recoverable."""
    def __init__(self, reason: str, raw: str = ""):
        self.reason = reason
        self.raw = raw
        super().__init__(f"Undecodable event: {reason}")


class StreamTerminatedError(BridgeError):
    """The event subscription ended. Terminal for that subscription."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Event stream terminated: {reason}")


class CredentialError(BridgeError):
    """The credential store could not complete an operation."""
    def __init__(self, provider_id: str, reason: str):
        self.provider_id = provider_id
        self.reason = reason
        super().__init__(f"Credential operation for {provider_id} failed: {reason}")


class UnknownProviderError(CredentialError):
    """Provider id is not one the credential store knows about."""
    def __init__(self, provider_id: str, known: list[str]):
        self.known = known
        known_str = ", ".join(known) if known else "none"
        super().__init__(
            provider_id,
            f"unknown provider (known providers: {known_str})",
        )
