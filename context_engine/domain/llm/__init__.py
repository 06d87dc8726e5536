from .prompt_loader import PromptLoader
from .summarizer import ExtractiveSummarizer, LLMSummarizer, Summarizer
from .token_counter import TokenCounter

__all__ = [
    "PromptLoader",
    "ExtractiveSummarizer",
    "LLMSummarizer",
    "Summarizer",
    "TokenCounter",
]
