"""Text transformation through the OpenAI chat completions API."""
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from openai import AsyncOpenAI

logger = structlog.get_logger(__name__)


@dataclass
class TransformResult:
    """Transformed text plus the usage metric recorded on the job."""

    text: str
    tokens_used: int


class OpenAITextTransformer:
    """Rewrites job input text with a chat model."""

    def __init__(self, api_key: Optional[str], model: str, instructions: str):
        """
        Initialize transformer.

        Args:
            api_key: OpenAI API key
            model: Chat model name
            instructions: System prompt applied to every request
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.instructions = instructions

    async def transform(self, text: str, options: Optional[dict[str, Any]] = None) -> TransformResult:
        """
        Transform text.

        Args:
            text: Input text
            options: Per-job options; ``temperature`` is forwarded when present

        Returns:
            Transformed text and total tokens used
        """
        options = options or {}
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.instructions},
                {"role": "user", "content": text},
            ],
            temperature=options.get("temperature", 0.7),
        )

        content = (response.choices[0].message.content or "").strip()
        tokens_used = response.usage.total_tokens if response.usage else 0
        logger.info("text_transformed", model=self.model, tokens_used=tokens_used)
        return TransformResult(text=content, tokens_used=tokens_used)
