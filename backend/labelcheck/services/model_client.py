"""Client for the vision-language model (OpenAI-compatible chat completions).

The model is treated as a non-deterministic oracle: each call returns text
that may or may not conform to the requested schema. SDK exceptions are
classified here into the pipeline's model-error taxonomy so the retry loop
never has to inspect vendor error payloads.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ..config import Settings
from .errors import ConfigurationError, ContentPolicyError, ModelCallError, RateLimitedError
from .prompts import schema_instruction

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

CONTENT_POLICY_CODES = {"content_policy_violation", "content_filter", "responsibleaipolicyviolation"}


@dataclass
class ModelResponse(Generic[T]):
    """Raw text, schema-validated payload (None when invalid), and token usage."""
    output_text: Optional[str]
    parsed: Optional[T]
    usage: Optional[dict] = None


def image_message(prompt: str, image_url: str) -> dict:
    """User message carrying instruction text and an image reference."""
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
        ],
    }


def _error_code(error: Exception) -> str:
    code = getattr(error, "code", None)
    if not code:
        body = getattr(error, "body", None)
        if isinstance(body, dict):
            code = body.get("code") or (body.get("error") or {}).get("code")
    return str(code or "").lower()


def classify_openai_error(error: Exception, model: str) -> Exception:
    """Map an SDK exception to RateLimitedError / ContentPolicyError / ModelCallError."""
    if isinstance(error, openai.RateLimitError):
        return RateLimitedError(str(error), model)
    if isinstance(error, openai.APIStatusError):
        if error.status_code == 429:
            return RateLimitedError(str(error), model)
        if _error_code(error) in CONTENT_POLICY_CODES:
            return ContentPolicyError(str(error), model)
        return ModelCallError(f"Model call failed with status {error.status_code}: {error}", model)
    return ModelCallError(f"Model call failed: {error}", model)


class VisionModelClient:
    """Issues structured-output requests to one endpoint, any deployment."""

    def __init__(self, client: AsyncOpenAI):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "VisionModelClient":
        if not settings.openai_endpoint or not settings.openai_api_key or not settings.model_deployments():
            raise ConfigurationError("Missing model endpoint configuration")
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_endpoint,
            timeout=settings.openai_timeout_seconds,
            # Rate limits are handled by our own fallback loop
            max_retries=0,
        )
        return cls(client)

    async def parse(
        self,
        model: str,
        system_prompt: str,
        user_message: dict,
        response_model: type[T],
    ) -> ModelResponse[T]:
        """Run one completion and validate its JSON against ``response_model``.

        Raises a ModelError subclass on call failure. A response that is not
        valid JSON for the schema is returned with ``parsed=None``.
        """
        schema = json.dumps(response_model.model_json_schema(by_alias=True))
        messages = [
            {"role": "system", "content": system_prompt + "\n\n" + schema_instruction(schema)},
            user_message,
        ]
        try:
            completion = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0,
            )
        except openai.OpenAIError as e:
            raise classify_openai_error(e, model) from e

        choice = completion.choices[0] if completion.choices else None
        if choice is not None and choice.finish_reason == "content_filter":
            raise ContentPolicyError("Response withheld by content filter", model)

        output_text = choice.message.content if choice is not None else None
        usage = None
        if completion.usage is not None:
            usage = {
                "input_tokens": completion.usage.prompt_tokens,
                "output_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }
        return ModelResponse(output_text=output_text, parsed=parse_structured(output_text, response_model), usage=usage)


def parse_structured(output_text: Optional[str], response_model: type[T]) -> Optional[T]:
    """Validate model output text; None when empty or non-conforming."""
    if not output_text:
        return None
    try:
        return response_model.model_validate_json(output_text)
    except ValidationError as e:
        logger.warning(f"Model output failed schema validation: {e.error_count()} error(s)")
        return None


def as_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)
