"""Exceptions raised by the depthbook engine."""


class DepthbookError(Exception):
    """Base class for depthbook errors."""


class MessageDecodeError(DepthbookError):
    """Inbound stream frame is not valid JSON or has an unrecognized shape."""


class SnapshotError(DepthbookError):
    """Snapshot request failed or returned an unusable payload."""
