from __future__ import annotations


class LiveRegistrationError(Exception):
    """Base class for failures surfaced by live video registration."""


class PreprocessingError(LiveRegistrationError):
    """An uploaded image could not be derived; nothing was persisted."""


class LiveIntegrityError(LiveRegistrationError):
    """A uniqueness or referential constraint rejected the write."""


class TransientConflictError(Exception):
    """A write lost a race with a concurrent transaction and may be retried."""


__all__ = [
    "LiveRegistrationError",
    "PreprocessingError",
    "LiveIntegrityError",
    "TransientConflictError",
]
