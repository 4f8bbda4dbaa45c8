"""Error taxonomy for the NER pipeline."""
from __future__ import annotations
from collections.abc import Iterable
from pathlib import Path


class NERError(Exception):
    """Base class for every error raised by the NER pipeline."""


class ResourceLoadError(NERError):
    """A vocabulary, configuration, weights or device resource could not be used.

    Raised once at construction time; the pipeline object is never built.
    """

    def __init__(self, resource: str, path: str | Path | None, reason: str):
        self.resource = resource
        self.path = str(path) if path is not None else None
        self.reason = reason
        where = f" ({self.path})" if self.path else ""
        super().__init__(f"Failed to load {resource}{where}: {reason}")


class ConfigurationError(NERError):
    """Label mapping is missing, or a predicted label id is absent from it."""

    def __init__(self, message: str, label_id: int | None = None,
                 known_ids: Iterable[int] | None = None):
        self.label_id = label_id
        self.known_ids = sorted(known_ids) if known_ids is not None else None
        super().__init__(message)

    @classmethod
    def unmapped_label(cls, label_id: int, known_ids: Iterable[int]) -> "ConfigurationError":
        known = sorted(known_ids)
        domain = f"{known[0]}..{known[-1]}" if known else "<empty>"
        return cls(
            f"Predicted label id {label_id} is not in the label mapping "
            f"(mapped ids: {domain}, {len(known)} labels)",
            label_id=label_id,
            known_ids=known,
        )


class InputError(NERError):
    """The input batch violates the call preconditions."""
