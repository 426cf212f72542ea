import google.generativeai as genai
import asyncio
import os
import logging
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol

from digest.config import MAX_RETRIES, TOPIC
from digest.errors import ConfigurationError, DigestError, ExternalServiceError, ParseError
from digest.rate_limit import RateLimiter, retry

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a homecare business operator. You are an expert in homecare news and are tasked "
    "with choosing which articles to include in a newsletter as well as generating a summary "
    f"for the newsletter and cleaning up the content of the articles. The newsletter covers {TOPIC}."
)

JSON_INSTRUCTION = (
    "Respond with valid JSON only. Your entire response must be a single JSON object or array "
    "without any additional text."
)

TEXT_INSTRUCTION = (
    "Respond with plain text only. Do not use any Markdown formatting or special characters "
    "for emphasis or structure."
)


class AIModel(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


@dataclass(frozen=True)
class ParseResult:
    """Outcome of validating an AI answer: either a value or the reason it was rejected."""

    ok: bool
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "ParseResult":
        return cls(ok=False, reason=reason)


def strip_code_fence(text: str) -> str:
    text = text.strip()
    text = re.sub(r"^```[a-zA-Z]*\s*\n?", "", text)
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def strip_markdown(text: str) -> str:
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*(.*?)\*\*", r"\1", text)
    text = re.sub(r"\*(.*?)\*", r"\1", text)
    text = re.sub(r"\[(.*?)\]\(.*?\)", r"\1", text)
    text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"`+", "", text)
    text = re.sub(r"\n{2,}", "\n\n", text)
    return text.strip()


def parse_json_text(text: str) -> Any:
    """Parses a model answer as JSON, tolerating code fences and surrounding prose."""
    cleaned = strip_code_fence(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    match = re.search(r"\[[\s\S]*\]|\{[\s\S]*\}", cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    raise ParseError(f"Response is not valid JSON: {cleaned[:100]!r}")


class GeminiModel:
    """
    Gemini text generation with model fallback and API key rotation.
    Quota and missing-model errors move on to the next model; once every
    model has been tried on a key, the next key is configured.
    """

    DEFAULT_MODELS = [
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemma-3-27b-it",
    ]

    def __init__(self, api_keys: Optional[List[str]] = None, models: Optional[List[str]] = None):
        if api_keys is None:
            api_keys = []
            for i in range(1, 10):
                key_name = "GEMINI_API_KEY" if i == 1 else f"GEMINI_API_KEY_{i}"
                api_key = os.getenv(key_name)
                if api_key:
                    api_keys.append(api_key)
                    logger.info(f"Loaded {key_name}")
        if not api_keys:
            raise ConfigurationError("No GEMINI_API_KEY found")

        self.api_keys = api_keys
        self.fallback_models = list(models or self.DEFAULT_MODELS)
        preferred = os.getenv("GEMINI_MODEL")
        if preferred and models is None:
            self.fallback_models = [preferred] + [m for m in self.fallback_models if m != preferred]

        self.current_key_index = 0
        genai.configure(api_key=self.api_keys[self.current_key_index])
        logger.info(f"Loaded {len(self.api_keys)} API key(s), models: {', '.join(self.fallback_models)}")

    def _rotate_api_key(self) -> bool:
        if len(self.api_keys) <= 1:
            return False
        old_index = self.current_key_index
        self.current_key_index = (self.current_key_index + 1) % len(self.api_keys)
        genai.configure(api_key=self.api_keys[self.current_key_index])
        logger.info(f"Rotated from API key #{old_index + 1} to API key #{self.current_key_index + 1}")
        return True

    async def generate(self, prompt: str) -> str:
        last_error: Optional[Exception] = None
        for key_attempt in range(len(self.api_keys)):
            for model_name in self.fallback_models:
                model = genai.GenerativeModel(model_name, system_instruction=SYSTEM_INSTRUCTION)
                try:
                    response = await model.generate_content_async(prompt)
                    return response.text
                except Exception as e:
                    error_msg = str(e).lower()
                    if "404" in error_msg or "not found" in error_msg:
                        logger.warning(f"Model {model_name} not found (404), skipping to next model...")
                    elif "429" in error_msg or "quota" in error_msg:
                        logger.warning(f"Model {model_name} quota exhausted, trying next model...")
                    else:
                        raise
                    last_error = e
            if not self._rotate_api_key():
                break
        raise ExternalServiceError(f"All API keys and models exhausted: {last_error}", service="ai")


class AIOracle:
    """
    Single entry point for AI calls. Every call is scheduled on the AI rate
    limiter, retried, framed for the expected format, and its answer is
    validated before it is handed back. Failures after the final attempt
    surface as ParseError (bad shape) or ExternalServiceError.
    """

    def __init__(
        self,
        model: AIModel,
        limiter: RateLimiter,
        max_attempts: int = MAX_RETRIES,
        sleep: Callable = asyncio.sleep,
    ):
        self.model = model
        self.limiter = limiter
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.call_count = 0

    async def _invoke(self, prompt: str) -> str:
        self.call_count += 1
        logger.debug(f"AI model called {self.call_count} times. Prompt: {prompt[:55]}...")
        text = await self.model.generate(prompt)
        if not isinstance(text, str):
            raise ParseError("AI model returned no text")
        return text

    async def _json_attempt(self, prompt: str, validate: Callable[[Any], ParseResult]) -> Any:
        data = parse_json_text(await self._invoke(prompt))
        result = validate(data)
        if not result.ok:
            raise ParseError(f"Unexpected response shape: {result.reason}")
        return result.value

    async def _text_attempt(self, prompt: str) -> str:
        text = strip_markdown(strip_code_fence(await self._invoke(prompt)))
        if text.startswith('"') and text.endswith('"') and len(text) > 1:
            text = text[1:-1].strip()
        if not text:
            raise ParseError("AI model returned an empty response")
        return text

    async def _run(self, attempt: Callable, *args: Any) -> Any:
        try:
            return await self.limiter.schedule(
                retry, attempt, *args, max_attempts=self.max_attempts, sleep=self.sleep
            )
        except DigestError:
            raise
        except Exception as e:
            raise ExternalServiceError(
                f"AI model call failed after {self.max_attempts} attempts: {e}", service="ai"
            ) from e

    async def generate_json(self, prompt: str, validate: Callable[[Any], ParseResult]) -> Any:
        return await self._run(self._json_attempt, f"{JSON_INSTRUCTION}\n\n{prompt}", validate)

    async def generate_text(self, prompt: str) -> str:
        return await self._run(self._text_attempt, f"{TEXT_INSTRUCTION}\n\n{prompt}")


def validate_title_list(data: Any) -> ParseResult:
    """Accepts a JSON array of objects that each carry a non-empty "title"."""
    if not isinstance(data, list):
        return ParseResult.failure(f"expected a JSON array, got {type(data).__name__}")
    titles = []
    for item in data:
        if isinstance(item, dict) and isinstance(item.get("title"), str) and item["title"].strip():
            titles.append(item["title"].strip())
    if data and not titles:
        return ParseResult.failure("no item carries a title")
    return ParseResult.success(titles)
