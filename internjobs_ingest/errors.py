"""Exceptions raised inside the ingestion pipeline."""


class IngestError(Exception):
    """Base class for pipeline errors."""


class FetchFailedError(IngestError):
    """No page of the source API could be fetched; nothing may be written."""


class ClassificationError(IngestError):
    """A single model call failed or returned something unusable."""


class ModelUnavailableError(ClassificationError):
    """Model endpoint unreachable, timed out, rate limited or erroring (5xx)."""
