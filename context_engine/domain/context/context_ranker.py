from typing import Any, List, Protocol, runtime_checkable
import asyncio
import math
import re

from langchain_core.embeddings import Embeddings

from context_engine.domain.models.errors import ScorerError


@runtime_checkable
class Scorer(Protocol):
    """Query-time relevance signal for one piece of content.

    Implementations return a float in [0, 1] and raise on failure, so a
    failure is never mistaken for a low score.
    """

    async def score(self, query_text: str, item_content: str) -> float:
        ...


def ensure_score(value: Any) -> float:
    """Validate a scorer result, raising ScorerError when it is unusable"""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ScorerError(f"Scorer returned a non-numeric score: {value!r}")
    score = float(value)
    if math.isnan(score) or not 0.0 <= score <= 1.0:
        raise ScorerError(f"Scorer returned a score outside [0, 1]: {value!r}")
    return score


class KeywordScorer:
    """Ranks content by keyword overlap with the query"""

    async def score(self, query_text: str, item_content: str) -> float:
        """Calculate relevance score between query and content"""

        query_lower = query_text.lower()
        content_lower = item_content.lower()

        query_words = set(re.findall(r'\w+', query_lower))
        content_words = set(re.findall(r'\w+', content_lower))

        if not query_words:
            return 0.0

        overlap = len(query_words.intersection(content_words))
        score = overlap / len(query_words)

        # Boost score if query appears as substring
        if query_lower.strip() and query_lower in content_lower:
            score += 0.3

        return min(score, 1.0)


class EmbeddingScorer:
    """Scores content by cosine similarity of embeddings"""

    def __init__(self, embeddings: Embeddings):
        self.embeddings = embeddings

    async def score(self, query_text: str, item_content: str) -> float:
        query_vector, content_vector = await asyncio.gather(
            self.embeddings.aembed_query(query_text),
            self.embeddings.aembed_query(item_content),
        )
        # Negative similarity carries no relevance
        return max(0.0, min(1.0, cosine_similarity(query_vector, content_vector)))


def cosine_similarity(left: List[float], right: List[float]) -> float:
    if len(left) != len(right):
        raise ScorerError(f"Embedding dimensions differ: {len(left)} != {len(right)}")

    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return dot / (left_norm * right_norm)
