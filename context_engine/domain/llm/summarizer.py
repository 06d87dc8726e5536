from typing import List, Optional, Protocol, Tuple, runtime_checkable
import structlog

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from context_engine.domain.llm.prompt_loader import PromptLoader
from context_engine.domain.llm.token_counter import TokenCounter, TokenCounterFn
from context_engine.domain.models.context_item import ContextItem

logger = structlog.get_logger(__name__)


@runtime_checkable
class Summarizer(Protocol):
    """Turns ordered context items into summary text.

    Returns ``(text, token_count)`` where the count is measured on the
    produced text, not estimated from the input.
    """

    async def summarize(self, items: List[ContextItem], max_tokens: int) -> Tuple[str, int]:
        ...


def format_item(index: int, item: ContextItem) -> str:
    header = f"### {index}. [{item.type.value}] {item.source or 'unknown'} (relevance {item.relevance:.2f})"
    return f"{header}\n{item.content}"


def format_items(items: List[ContextItem]) -> str:
    return "\n\n".join(format_item(index, item) for index, item in enumerate(items, start=1))


class ExtractiveSummarizer:
    """Offline summarizer: one line per item, in the order given.

    Every item handed in is rendered; the caller has already fitted the
    selection to the budget, so nothing is dropped here.
    """

    def __init__(self, token_counter: Optional[TokenCounterFn] = None):
        self.token_counter = token_counter or TokenCounter()

    async def summarize(self, items: List[ContextItem], max_tokens: int) -> Tuple[str, int]:
        lines = []
        for item in items:
            first_line = next((line.strip() for line in item.content.splitlines() if line.strip()), "")
            lines.append(f"- [{item.type.value}] {item.source or 'unknown'}: {first_line}")

        text = "\n".join(lines)
        return text, self.token_counter(text)


class LLMSummarizer:
    """Summarizes through a chat model using the packaged summary prompt"""

    def __init__(
        self,
        chat_model: BaseChatModel,
        prompt_loader: PromptLoader,
        prompt_name: str = "context/summary",
        token_counter: Optional[TokenCounterFn] = None
    ):
        self.chat_model = chat_model
        self.prompt_loader = prompt_loader
        self.prompt_name = prompt_name
        self.token_counter = token_counter or TokenCounter()

    async def summarize(self, items: List[ContextItem], max_tokens: int) -> Tuple[str, int]:
        prompt = await self.prompt_loader.get_prompt(
            self.prompt_name,
            {
                "item_count": len(items),
                "max_tokens": max_tokens,
                "items": format_items(items),
            }
        )

        response = await self.chat_model.ainvoke([HumanMessage(content=prompt)])
        text = message_text(response).strip()

        usage = getattr(response, "usage_metadata", None) or {}
        output_tokens = usage.get("output_tokens")
        tokens = int(output_tokens) if output_tokens is not None else self.token_counter(text)

        if tokens > max_tokens:
            logger.warning("Summary exceeded requested budget", tokens=tokens, max_tokens=max_tokens)

        return text, tokens


def message_text(message: BaseMessage) -> str:
    """Plain text of a chat message whose content may be a list of parts"""

    if isinstance(message.content, str):
        return message.content

    parts = []
    for part in message.content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
