"""
Exception hierarchy for Battery Widget.
"""


class BatteryWidgetError(Exception):
    """Base class for all Battery Widget errors."""


class ReadError(BatteryWidgetError):
    """Raw reading cannot be normalized into a snapshot."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid battery reading: {reason}")
        self.reason = reason


class StoreError(BatteryWidgetError):
    """Time-series store operation failed."""


class StoreIOError(StoreError):
    """Store could not be read or written. Prior state is preserved."""


class StoreCorruptError(StoreError):
    """Store file is corrupt and has been reset to an empty series."""


class RenderError(BatteryWidgetError):
    """Rendering a widget surface failed."""


class UnsupportedKindError(RenderError):
    """No renderer exists for the requested widget kind."""

    def __init__(self, kind):
        super().__init__(f"Unsupported widget kind: {kind!r}")
        self.kind = kind
