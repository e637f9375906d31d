"""
Exception types raised by the reconciliation package.
"""


class ReconciliationError(Exception):
    """Base class for every error raised by gst_recon."""


class InputStructureError(ReconciliationError):
    """An input table cannot be reconciled at all (no rows, no key columns)."""


class WorkbookError(ReconciliationError):
    """A spreadsheet could not be opened or the requested sheet is missing."""


class NotificationError(ReconciliationError):
    """Mail settings are incomplete, so no notice can be sent."""
