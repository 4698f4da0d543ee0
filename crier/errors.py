"""Error kinds shared across crier.

The pipeline distinguishes a handful of failure kinds and contains each of
them per issue. Subpackages raise subclasses of these so that the dispatcher
can catch by kind without knowing which collaborator failed.
"""

from __future__ import annotations


class CrierError(Exception):
    """Base class for all crier errors."""


class TransportError(CrierError):
    """Raised when a remote system is unreachable or rejects a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)


class MalformedDataError(CrierError):
    """Raised when a remote payload cannot be decoded into domain objects."""

    @classmethod
    def invalid_timestamp(cls, value: object) -> MalformedDataError:
        """Return an error for an unparsable epoch timestamp."""
        return cls(f"invalid epoch millisecond timestamp: {value!r}")


class CheckpointStoreError(CrierError):
    """Base class for checkpoint store failures."""


class CheckpointReadError(CheckpointStoreError):
    """Raised when checkpoint state cannot be loaded."""

    @classmethod
    def for_key(cls, key: str) -> CheckpointReadError:
        """Return an error for a failed read of ``key``."""
        return cls(f"failed to read checkpoint {key!r}")


class CheckpointWriteError(CheckpointStoreError):
    """Raised when checkpoint state cannot be persisted."""

    @classmethod
    def for_key(cls, key: str) -> CheckpointWriteError:
        """Return an error for a failed write of ``key``."""
        return cls(f"failed to write checkpoint {key!r}")


class ConfigurationError(CrierError):
    """Raised when configuration or wiring is invalid."""

    @classmethod
    def missing_collaborator(cls, name: str) -> ConfigurationError:
        """Return an error for a required collaborator that was not supplied."""
        return cls(f"{name} is required")
