"""Domain errors for n8n self-hoster."""

from typing import List, Optional, Sequence


class SelfHosterError(RuntimeError):
    """Raised when a deployment step cannot continue safely."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        diagnostics: Optional[Sequence[str]] = None,
    ):
        super().__init__(message)
        self.step = step
        self.diagnostics: List[str] = list(diagnostics or [])


class MissingConfiguration(SelfHosterError):
    """A required configuration value is absent."""

    def __init__(self, field_name: str, message: Optional[str] = None):
        super().__init__(message or f"Missing required configuration: {field_name}")
        self.field_name = field_name


class PersistenceFailure(SelfHosterError):
    """Deployment files could not be written."""


class DescriptorNotFound(SelfHosterError):
    """No compose descriptor exists in the install directory."""


class ApplyFailure(SelfHosterError):
    """Bringing the deployment up or down failed."""

    def __init__(self, message: str, restored_from: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.restored_from = restored_from


class EnvironmentNotReady(SelfHosterError):
    """Docker or the tailnet is not usable on this host."""


class UnsupportedTransition(SelfHosterError):
    """The requested exposure change is not implemented."""


class CommandTimeout(SelfHosterError):
    """An external command exceeded its time limit."""
