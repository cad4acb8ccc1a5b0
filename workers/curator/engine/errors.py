class CuratorError(Exception):
    """Base curation error."""


class ConfigError(CuratorError):
    """Raised when a required credential or identity is missing."""


class AllocationDegenerate(CuratorError):
    """Raised when no category carries any weighted demand."""


class TransientProviderError(CuratorError):
    """Raised when an external lookup fails in a way that may succeed later."""


class AuthFailure(CuratorError):
    """Raised when the refresh credential cannot be exchanged for an access token."""


class RunAlreadyActive(CuratorError):
    """Raised when another run holds an unexpired run lease."""
