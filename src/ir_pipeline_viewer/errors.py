"""
IR pipeline viewer exceptions
"""


class ViewerError(Exception):
    """Base class for all viewer exceptions."""


class MissingSurfaceError(ViewerError, RuntimeError):
    """Raised when the rendering surface is used before it exists or after it was released."""


class PayloadError(ViewerError, ValueError):
    """Raised when a compile result or pane state payload cannot be parsed."""


class EventKindMismatchError(ViewerError, TypeError):
    """Raised when an event payload is published under the wrong kind."""
