"""Exceptions shared by the storage, model and preview layers."""


class PreviewBuilderError(Exception):
    """Base class for errors surfaced at the request boundary."""


class StoreError(PreviewBuilderError):
    """Key-value/blob store I/O failed."""

    def __init__(self, message: str, key: str = ""):
        super().__init__(message)
        self.key = key


class ModelError(PreviewBuilderError):
    """The hosted model call failed or returned an unusable payload."""


class InvalidFileSetError(PreviewBuilderError, ValueError):
    """A File Set violates the data model (e.g. duplicate paths)."""
