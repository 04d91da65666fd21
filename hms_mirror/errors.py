"""Typed failures raised while planning and applying a migration."""


class MirrorError(RuntimeError):
    """Base class for hms_mirror failures."""


class MissingConfigurationError(MirrorError):
    """A required setting (warehouse plan, target namespace, GLM) is absent."""


class LocationMismatchError(MirrorError):
    """A location cannot be aligned with the configured namespace or table root."""

    def __init__(self, message: str, location: str | None = None):
        super().__init__(message)
        self.location = location


class ConnectivityError(MirrorError):
    """Acquiring a connection for an environment failed."""


class PhaseTransitionError(MirrorError):
    """A table was asked to move backwards through its phase states."""
