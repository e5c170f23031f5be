"""
Text-Understanding Client.

LLM-based structured extraction supporting multiple providers (OpenAI,
Anthropic). Providers are registry records; the client picks the
configured one, falls back to any other with credentials, and returns a
CompletionResult instead of raising.

Credentials come from the provider SDKs' usual environment variables
(OPENAI_API_KEY, ANTHROPIC_API_KEY).

Author: ML Engineering Team
"""

import base64
import io
import json
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import anthropic
import openai
from PIL import Image

from config import get_config
from receipt_pipeline.utils.exceptions import (
    MalformedResponse,
    ProviderError,
    ProviderUnavailable,
    ReceiptPipelineError,
)
from receipt_pipeline.utils.helpers import call_with_timeout
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)

# (response text, input tokens, output tokens)
RawCompletion = Tuple[str, int, int]


@dataclass
class CompletionResult:
    """
    Outcome of one completion call.

    Attributes:
        success: Whether structured JSON was obtained
        structured_json: Parsed JSON object
        cost: Cost in USD from token usage
        provider: Name of the provider used
        error: Error message when unsuccessful
        error_type: Exception class name when unsuccessful
        usage: Input and output token counts
    """
    success: bool
    structured_json: Optional[Dict[str, Any]] = None
    cost: float = 0.0
    provider: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)
    exception: Optional[ReceiptPipelineError] = field(default=None, repr=False)

    @classmethod
    def failed(cls, error: ReceiptPipelineError, provider: Optional[str] = None, cost: float = 0.0) -> 'CompletionResult':
        return cls(
            success=False,
            cost=cost,
            provider=provider,
            error=str(error),
            error_type=type(error).__name__,
            exception=error,
        )

    def raise_for_error(self) -> None:
        """Re-raise the failure that produced this result, if any."""
        if not self.success:
            raise self.exception or ProviderError(self.error or "Completion failed")


@dataclass
class LLMProvider:
    """
    Registry record for one text-understanding service.

    Attributes:
        name: Registry key
        model: Model identifier
        input_cost_per_1k: USD per 1000 input tokens
        output_cost_per_1k: USD per 1000 output tokens
        available: Returns whether credentials are configured
        call: Async callable (prompt, image) -> (text, input_tokens, output_tokens)
    """
    name: str
    model: str
    input_cost_per_1k: float
    output_cost_per_1k: float
    available: Callable[[], bool]
    call: Callable[[str, Optional[Image.Image]], Awaitable[RawCompletion]]

    def cost_for(self, input_tokens: int, output_tokens: int) -> float:
        return round(
            input_tokens / 1000 * self.input_cost_per_1k
            + output_tokens / 1000 * self.output_cost_per_1k,
            6
        )


def strip_code_fences(response_text: str) -> str:
    """
    Extract the body of a markdown code block, if the response is fenced.

    Example:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    text = response_text.strip()
    if not text.startswith("```"):
        return text

    json_lines = []
    in_code = False
    for line in text.split("\n"):
        if line.strip().startswith("```"):
            in_code = not in_code
            continue
        if in_code:
            json_lines.append(line)
    return "\n".join(json_lines)


def parse_structured_json(response_text: str, provider: str) -> Dict[str, Any]:
    """
    Parse a provider response into a JSON object.

    Raises:
        MalformedResponse: If the text is not a JSON object.
    """
    try:
        result = json.loads(strip_code_fences(response_text))
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedResponse(provider, f"invalid JSON: {e}")
    if not isinstance(result, dict):
        raise MalformedResponse(provider, f"expected a JSON object, got {type(result).__name__}")
    return result


def _encode_image(image: Image.Image) -> str:
    buffer = io.BytesIO()
    image.convert('RGB').save(buffer, format='PNG')
    return base64.b64encode(buffer.getvalue()).decode('ascii')


def openai_provider() -> LLMProvider:
    """Build the registry record for OpenAI chat completions."""
    model = get_config("llm.openai.model", "gpt-4o-mini")
    max_tokens = get_config("llm.max_tokens", 1500)
    temperature = get_config("llm.temperature", 0.0)
    clients = {}

    def available() -> bool:
        return bool(os.getenv("OPENAI_API_KEY"))

    async def call(prompt: str, image: Optional[Image.Image]) -> RawCompletion:
        if "openai" not in clients:
            clients["openai"] = openai.AsyncOpenAI()  # Uses OPENAI_API_KEY env var

        content: Any = prompt
        if image is not None:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{_encode_image(image)}"}},
            ]

        response = await clients["openai"].chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": content}],
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"}
        )
        usage = response.usage
        return (
            response.choices[0].message.content or "",
            usage.prompt_tokens if usage else 0,
            usage.completion_tokens if usage else 0,
        )

    return LLMProvider(
        name="openai",
        model=model,
        input_cost_per_1k=get_config("llm.openai.input_cost_per_1k", 0.00015),
        output_cost_per_1k=get_config("llm.openai.output_cost_per_1k", 0.0006),
        available=available,
        call=call,
    )


def anthropic_provider() -> LLMProvider:
    """Build the registry record for Anthropic messages."""
    model = get_config("llm.anthropic.model", "claude-3-5-haiku-20241022")
    max_tokens = get_config("llm.max_tokens", 1500)
    temperature = get_config("llm.temperature", 0.0)
    clients = {}

    def available() -> bool:
        return bool(os.getenv("ANTHROPIC_API_KEY"))

    async def call(prompt: str, image: Optional[Image.Image]) -> RawCompletion:
        if "anthropic" not in clients:
            clients["anthropic"] = anthropic.AsyncAnthropic()  # Uses ANTHROPIC_API_KEY env var

        content = [{"type": "text", "text": prompt}]
        if image is not None:
            content.insert(0, {
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": _encode_image(image)},
            })

        response = await clients["anthropic"].messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": content}]
        )
        text = ''.join(block.text for block in response.content if getattr(block, 'type', '') == 'text')
        return text, response.usage.input_tokens, response.usage.output_tokens

    return LLMProvider(
        name="anthropic",
        model=model,
        input_cost_per_1k=get_config("llm.anthropic.input_cost_per_1k", 0.0008),
        output_cost_per_1k=get_config("llm.anthropic.output_cost_per_1k", 0.004),
        available=available,
        call=call,
    )


class TextUnderstandingClient:
    """
    Async client for structured receipt extraction.

    Attributes:
        providers: Registry of provider records by name
        primary: Preferred provider name
        timeout_s: Per-call timeout

    Example:
        >>> client = TextUnderstandingClient()
        >>> result = asyncio.run(client.complete(prompt))
        >>> if result.success:
        ...     print(result.structured_json["vendor"])
    """

    def __init__(
        self,
        providers: Optional[Dict[str, LLMProvider]] = None,
        primary: Optional[str] = None,
        timeout_s: Optional[float] = None
    ) -> None:
        if providers is None:
            providers = {"openai": openai_provider(), "anthropic": anthropic_provider()}
        self.providers = dict(providers)
        self.primary = primary or get_config("llm.provider", "openai")
        self.timeout_s = timeout_s if timeout_s is not None else get_config("llm.timeout_s", 20)

    def select_provider(self) -> Optional[LLMProvider]:
        """First provider with credentials, primary first."""
        names = [self.primary] + [n for n in self.providers if n != self.primary]
        for name in names:
            provider = self.providers.get(name)
            if provider is not None and provider.available():
                return provider
        return None

    def is_available(self) -> bool:
        return self.select_provider() is not None

    def estimated_cost(self, prompt_chars: int, output_tokens: int = 500) -> float:
        """Rough cost of one call, at about four characters per token."""
        provider = self.select_provider() or self.providers.get(self.primary)
        if provider is None:
            return 0.0
        return provider.cost_for(prompt_chars // 4, output_tokens)

    async def complete(self, prompt: str, image: Optional[Image.Image] = None) -> CompletionResult:
        """
        Run one structured-extraction completion.

        Args:
            prompt: Full prompt text.
            image: Optional receipt image for vision-capable models.

        Returns:
            CompletionResult; failures are returned, never raised.
        """
        provider = self.select_provider()
        if provider is None:
            error = ProviderUnavailable("text-understanding", "no provider credentials configured")
            logger.warning(str(error))
            return CompletionResult.failed(error)

        try:
            text, input_tokens, output_tokens = await call_with_timeout(
                provider.call(prompt, image), self.timeout_s, f"{provider.name} completion"
            )
        except ProviderError as e:
            logger.warning(f"Completion failed: {e}")
            return CompletionResult.failed(e, provider.name)
        except (openai.OpenAIError, anthropic.AnthropicError) as e:
            logger.warning(f"{provider.name} API error: {e}")
            return CompletionResult.failed(ProviderError(f"{provider.name} API error: {e}"), provider.name)
        except Exception as e:
            # e.g. an empty choices list in an otherwise successful response
            logger.warning(f"{provider.name} call raised {type(e).__name__}: {e}")
            error = ProviderError(f"{provider.name} call failed: {e}", {"reason": type(e).__name__})
            return CompletionResult.failed(error, provider.name)

        cost = provider.cost_for(input_tokens, output_tokens)
        usage = {'inputTokens': input_tokens, 'outputTokens': output_tokens}

        try:
            structured = parse_structured_json(text, provider.name)
        except MalformedResponse as e:
            logger.warning(f"Unparsable completion from {provider.name}: {e}")
            result = CompletionResult.failed(e, provider.name, cost)
            result.usage = usage
            return result

        logger.info(f"Completion from {provider.name}: {input_tokens}+{output_tokens} tokens, ${cost:.4f}")
        return CompletionResult(
            success=True,
            structured_json=structured,
            cost=cost,
            provider=provider.name,
            usage=usage,
        )

    def get_status(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {
                'available': provider.available(),
                'model': provider.model,
                'primary': name == self.primary,
            }
            for name, provider in self.providers.items()
        }
