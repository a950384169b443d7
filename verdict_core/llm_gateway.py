"""
VERDICT Async LLM Gateway
=========================
Handles asynchronous interactions with the hosted scoring model (Groq), including:
- One client per tenant credential (cached)
- Retry with exponential backoff and a fallback-model cascade (batch path)
- Single un-retried attempts (live path)
- Structured output parsing (Pydantic integration)
"""

import json
import re
import logging
from typing import Any, Dict, List, Type, TypeVar

from groq import AsyncGroq, AuthenticationError
from tenacity import (
    retry, stop_after_attempt, wait_exponential, retry_if_exception_type,
    retry_if_not_exception_type,
)
from pydantic import BaseModel, ValidationError

from .config import LLM_FALLBACK_MODELS, LLM_MAX_TOKENS, LLM_MODEL, LLM_TEMP
from .errors import MalformedPayloadError, ScoringCredentialError, ScoringServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT = re.compile(r"(\{[\s\S]*\})")


def extract_json(raw_text: str) -> Any:
    """Parse a JSON document out of a model reply that may be fenced or padded."""
    text = (raw_text or "").strip()
    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    if not text.startswith("{") and not text.startswith("["):
        obj = _OBJECT.search(text)
        if obj:
            text = obj.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Model reply is not valid JSON: {e}") from e


class AsyncLLMGateway:
    """
    Gateway for asynchronous LLM interactions on behalf of a tenant.
    """

    def __init__(self):
        self._clients: Dict[str, AsyncGroq] = {}
        self.primary_model = LLM_MODEL
        self.fallback_models = list(LLM_FALLBACK_MODELS)

    def _get_client(self, credential: str) -> AsyncGroq:
        client = self._clients.get(credential)
        if client is None:
            client = AsyncGroq(api_key=credential)
            self._clients[credential] = client
        return client

    async def _call_api_once(self, messages: List[Dict[str, str]], model: str, credential: str,
                             temperature: float = LLM_TEMP, max_tokens: int = LLM_MAX_TOKENS) -> str:
        client = self._get_client(credential)
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except AuthenticationError as e:
            raise ScoringCredentialError(f"Scoring service rejected the tenant credential: {e}") from e
        except Exception as e:
            logger.error(f"API Call Failed ({model}): {str(e)}")
            raise ScoringServiceError(f"Scoring service call failed ({model}): {e}") from e
        return response.choices[0].message.content or ""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ScoringServiceError) & retry_if_not_exception_type(ScoringCredentialError),
        reraise=True,
    )
    async def _call_api_raw(self, messages: List[Dict[str, str]], model: str, credential: str,
                            temperature: float = LLM_TEMP, max_tokens: int = LLM_MAX_TOKENS) -> str:
        """
        API call with retry logic.
        """
        return await self._call_api_once(messages, model, credential, temperature, max_tokens)

    async def generate_text(self, system_prompt: str, user_prompt: str, credential: str,
                            temperature: float = LLM_TEMP, max_tokens: int = LLM_MAX_TOKENS,
                            retries: bool = True) -> str:
        """
        Generate raw text. With retries=False a single attempt is made against
        the primary model and any failure propagates.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ]

        if not retries:
            return await self._call_api_once(messages, self.primary_model, credential, temperature, max_tokens)

        try:
            return await self._call_api_raw(messages, self.primary_model, credential, temperature, max_tokens)
        except ScoringCredentialError:
            raise
        except ScoringServiceError:
            # Fallback cascade
            for model in self.fallback_models:
                try:
                    logger.warning(f"Falling back to model: {model}")
                    return await self._call_api_raw(messages, model, credential, temperature, max_tokens)
                except ScoringCredentialError:
                    raise
                except ScoringServiceError:
                    continue
            raise ScoringServiceError("All models failed.")

    async def generate_json(self, system_prompt: str, user_prompt: str, credential: str,
                            max_tokens: int = LLM_MAX_TOKENS, retries: bool = True) -> Any:
        """
        Generate a JSON document. Raises MalformedPayloadError when the reply
        cannot be parsed.
        """
        enhanced_system_prompt = f"{system_prompt}\n\nReturn ONLY the JSON object. Do not wrap it in markdown code blocks."
        raw_response = await self.generate_text(
            enhanced_system_prompt, user_prompt, credential,
            temperature=0.2, max_tokens=max_tokens, retries=retries
        )
        return extract_json(raw_response)

    async def generate_structured(self, system_prompt: str, user_prompt: str, response_model: Type[T],
                                  credential: str, max_tokens: int = LLM_MAX_TOKENS,
                                  retries: bool = True) -> T:
        """
        Generate a structured JSON response and validate it against a Pydantic model.
        """
        schema = response_model.model_json_schema()

        enhanced_system_prompt = f"""{system_prompt}

You must return a valid JSON object that strictly adheres to this schema:
{json.dumps(schema, indent=2)}
"""
        data = await self.generate_json(enhanced_system_prompt, user_prompt, credential,
                                        max_tokens=max_tokens, retries=retries)
        try:
            return response_model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Failed to parse structured output: {e}")
            raise MalformedPayloadError(f"LLM failed to generate valid JSON for {response_model.__name__}") from e


# Global Gateway Instance
llm_gateway = AsyncLLMGateway()
