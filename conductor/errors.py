"""Shared error types for the conductor package."""


class ConductorError(Exception):
    """Base exception for conductor errors.

    Use this for user-facing errors that should have actionable messages.
    """

    pass


class ManifestError(ConductorError):
    """Raised when an agent manifest cannot be parsed or validated."""

    pass


class SkillInstallError(ConductorError):
    """Raised when a skill cannot be installed for an agent."""

    pass


class ProviderNotFoundError(ConductorError):
    """Raised when an agent references a provider that is not registered."""

    pass
