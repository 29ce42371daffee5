"""
Exception hierarchy for the brokerage note engine.

Only unrecoverable states raise. Partial extraction problems are reported
through structured results (see ``ExtractionSummary``).
"""


class NoteEngineError(Exception):
    """Base class for all note engine errors."""


class EmptyDocumentError(NoteEngineError, ValueError):
    """The extraction collaborator returned no usable text for a document."""


class ExtractionEmptyError(NoteEngineError):
    """No recognized section marker was found in a document.

    The parser reports this case as ``block_found=False`` in its summary;
    strict callers (the CLI ``--strict`` flag) escalate it to this error.
    """

    def __init__(self, note_id: str, message: str = ""):
        self.note_id = note_id
        super().__init__(message or f"Could not read note {note_id}: no recognized section found")


class QuoteFetchError(NoteEngineError):
    """A market quote provider failed to return quotes."""
