"""
Enricher error hierarchy.

Each error says whether retrying the same call can help (``retryable``), so
the batch runner can skip pointless retries of configuration or store
failures while still retrying flaky providers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EnricherError(Exception):
    """Base class for all refresh pipeline errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        record_id: Optional[str] = None,
        run_id: Optional[str] = None,
        phase: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.record_id = record_id
        self.run_id = run_id
        self.phase = phase
        self.details = dict(details or {})

    def as_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "retryable": self.retryable,
            "record_id": self.record_id,
            "run_id": self.run_id,
            "phase": self.phase,
            "details": self.details,
        }


class GenerationError(EnricherError):
    """A search or synthesis call failed or returned something unusable."""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, phase=kwargs.pop("phase", "generation"), **kwargs)
        self.provider = provider
        self.status_code = status_code
        self.details.update({k: v for k, v in (("provider", provider), ("status_code", status_code)) if v is not None})


class MalformedRecordError(EnricherError):
    """A stored record lacks a field the pipeline needs."""

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        if field is not None:
            self.details["field"] = field


class PersistenceError(EnricherError):
    """The record store rejected or failed a read or write. Fatal to the batch."""

    def __init__(self, message: str, *, operation: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, phase=kwargs.pop("phase", "persistence"), **kwargs)
        self.operation = operation
        if operation is not None:
            self.details["operation"] = operation


class ConfigError(EnricherError):
    """Missing or invalid configuration value."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        section: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, phase=kwargs.pop("phase", "configuration"), **kwargs)
        self.key = key
        self.section = section
        self.details.update({k: v for k, v in (("key", key), ("section", section)) if v is not None})


def is_retryable(exc: BaseException) -> bool:
    """Retry hook for the backoff executor.

    Unknown exceptions are retried; pipeline errors decide for themselves.
    """
    if isinstance(exc, EnricherError):
        return exc.retryable
    return isinstance(exc, Exception)


__all__ = [
    "ConfigError",
    "EnricherError",
    "GenerationError",
    "MalformedRecordError",
    "PersistenceError",
    "is_retryable",
]
