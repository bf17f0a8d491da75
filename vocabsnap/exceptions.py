"""
Exception classes for vocabsnap.

All vocabsnap exceptions inherit from VocabSnapError, so callers can
catch every library error at once. Noisy OCR text is never an error:
extraction degrades to fewer (or zero) candidates instead of raising.
"""


class VocabSnapError(Exception):
    """Base exception for all vocabsnap errors."""

    pass


class SchedulingError(VocabSnapError, ValueError):
    """
    Raised for a quality judgment outside 0-5 or a malformed scheduling state.

    This is a contract violation by the caller, never clamped silently.
    """

    pass


class EntryNotFoundError(VocabSnapError, KeyError):
    """Raised when the repository has no entry with the requested id."""

    pass


class DuplicateEntryError(VocabSnapError):
    """Raised when adding an entry whose id already exists."""

    pass


class BackupFormatError(VocabSnapError):
    """Raised when a backup or text import cannot be understood."""

    pass


class OCRError(VocabSnapError):
    """Raised when the OCR engine cannot be started."""

    pass
