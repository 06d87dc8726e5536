from typing import Optional


class ContextError(Exception):
    """Base class for context engine errors"""


class ValidationError(ContextError, ValueError):
    """Malformed input: out-of-range relevance, empty identifiers, unknown type tag"""


class NotFoundError(ContextError, LookupError):
    """Unknown session or item referenced by an operation that needs it"""

    def __init__(self, message: str, session_id: Optional[str] = None, item_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id
        self.item_id = item_id


class ScorerError(ContextError):
    """A scorer could not produce a valid score"""


class SummarizationError(ContextError):
    """The summarizer failed or timed out; no partial summary is produced"""

    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Summarization failed for session {session_id}: {reason}")
        self.session_id = session_id
        self.reason = reason


class PromptNotFoundError(ContextError, FileNotFoundError):
    """Named prompt template does not exist"""


class DegradedRetrievalWarning(UserWarning):
    """Retrieval fell back to stored relevance because the scorer was unavailable"""

    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Degraded retrieval for session {session_id}: {reason}")
        self.session_id = session_id
        self.reason = reason
