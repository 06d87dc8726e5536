# State = everything that must stay consistent while several agent tasks touch
# the same session at once.

# Each session owns one SessionLock:

#   writers (add, remove, relevance update, prune, clear)  -> exclusive
#   readers (retrieval, summarization snapshot)            -> shared

# Readers copy what they need and release the lock before calling a scorer or
# summarizer, so a slow external call never blocks writes on the session.

from .session_lock import SessionLock

__all__ = ["SessionLock"]
