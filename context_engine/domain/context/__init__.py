# This module handles context for agent sessions

# +---------------------+
# |   SessionStore      |   (owns every session, hands out copies)
# |---------------------|
# | id -> SessionRecord |
# | per-session lock    |
# +---------------------+
#           |
#           v
# +---------------------+
# |   ItemRegistry      |   (add / remove / relevance, validated)
# +---------------------+
#      |          |            \
#      v          v             v
# +-----------+ +-----------+ +---------------------------+
# | Retrieval | | Pruning   | | Summarization             |
# |-----------| |-----------| |---------------------------|
# | filters   | | age AND   | | relevance order,          |
# | scorer    | | relevance | | token budget,             |
# | weighted  | | or        | | external summarizer,      |
# | ranking   | | capacity  | | cached until stale        |
# +-----------+ +-----------+ +---------------------------+
#         \          |          /
#          v         v         v
#     +------------------------------+
#     |       ContextManager         |   (public facade)
#     +------------------------------+

from .context_manager import ContextManager
from .context_ranker import EmbeddingScorer, KeywordScorer, Scorer
from .context_retriever import RetrievalEngine, RetrievalResult
from .context_pruner import PruningEngine
from .context_summarizer import SummarizationCoordinator

__all__ = [
    "ContextManager",
    "EmbeddingScorer",
    "KeywordScorer",
    "Scorer",
    "RetrievalEngine",
    "RetrievalResult",
    "PruningEngine",
    "SummarizationCoordinator",
]
