"""
Prompt templates stored as markdown files under a base directory.

Templates are addressed by name relative to the base directory without an
extension (``context/summary`` -> ``<base>/context/summary.md``, falling back to
``.txt``) and use ``{{ variable }}`` placeholders.
"""

from typing import Dict, Any, Optional, Union
from pathlib import Path
import re
import structlog

from context_engine.domain.models.errors import PromptNotFoundError

logger = structlog.get_logger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")
TEMPLATE_EXTENSIONS = (".md", ".txt")


class PromptLoader:
    """Loads prompt templates from disk and fills in their variables"""

    def __init__(self, prompts_path: Union[str, Path]):
        self.prompts_path = Path(prompts_path).resolve()
        self._cache: Dict[str, str] = {}
        logger.debug("Prompt loader configured", prompts_path=str(self.prompts_path))

    async def load_prompt_template(self, prompt_name: str) -> str:
        """Load a template by name, caching it for later calls

        Raises:
            PromptNotFoundError: If no template file exists for the name
        """

        if prompt_name in self._cache:
            return self._cache[prompt_name]

        for extension in TEMPLATE_EXTENSIONS:
            path = (self.prompts_path / f"{prompt_name}{extension}").resolve()
            if self.prompts_path not in path.parents:
                break
            if path.is_file():
                template = path.read_text(encoding="utf-8")
                self._cache[prompt_name] = template
                return template

        logger.warning("Prompt not found", prompt_name=prompt_name, prompts_path=str(self.prompts_path))
        raise PromptNotFoundError(f"Prompt not found: {prompt_name}")

    def process_template(self, template: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """Substitute ``{{ name }}`` placeholders; unknown names are left as written"""

        if not variables:
            return template

        def substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            return str(variables[name]) if name in variables else match.group(0)

        return PLACEHOLDER.sub(substitute, template)

    async def get_prompt(self, prompt_name: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """Load a template and apply variables in one step"""

        template = await self.load_prompt_template(prompt_name)
        return self.process_template(template, variables)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Prompt cache cleared")
