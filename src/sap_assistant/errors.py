"""Failures that propagate out of the assistant pipeline."""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for errors surfaced to the API boundary."""

    status_code: int = 500


class UpstreamUnavailable(AssistantError):
    """The language model could not be reached or returned nothing usable."""

    status_code = 502

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.upstream_status = status_code


class ClassificationAmbiguous(AssistantError):
    """The classifier reply is neither a decision object nor plain text."""

    status_code = 500

    def __init__(self, raw: str) -> None:
        super().__init__("Failed to interpret AI decision.")
        self.raw = raw
