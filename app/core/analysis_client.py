"""Content analysis capability backed by LLM providers.

Every provider exposes the same call: ``analyze(content, content_type, options)``
returning parsed JSON plus token usage and latency. Clients are built once at
startup by ``build_analysis_registry`` and handed to the pipeline explicitly.
"""

import asyncio
import io
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union

import httpx
from httpx import HTTPStatusError, TimeoutException
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.core.config import Settings
from app.core.exceptions import (
    AnalysisError,
    APIClientError,
    APITimeoutError,
    ConfigurationError,
)
from app.schemas.pipeline import TokenUsage
from app.utils.document_text import DOCX_MIME, PPTX_MIME, extract_text, is_media
from app.utils.json_parser import parse_json_safely
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Gemini accepts inline parts up to ~20 MB; larger artifacts go through the Files API
GEMINI_INLINE_LIMIT_BYTES = 18 * 1024 * 1024

Content = Union[bytes, str, None]


@dataclass
class AnalysisOptions:
    """What to ask the provider for one call."""

    task: str
    prompt: str
    max_output_tokens: Optional[int] = None
    temperature: float = 0.0


@dataclass
class AnalysisResult:
    data: Dict[str, Any]
    usage: TokenUsage
    latency_ms: int
    model: str
    provider: str
    truncated: bool = False
    raw_text: str = field(default="", repr=False)


class ContentAnalysisService(Protocol):
    name: str
    model: str

    def supports(self, content_type: Optional[str]) -> bool:
        ...

    async def analyze(
        self, content: Content, content_type: Optional[str], options: AnalysisOptions
    ) -> AnalysisResult:
        ...


def parse_analysis_payload(text: str, provider: str, truncated: bool) -> Dict[str, Any]:
    """Parse provider output into a dict or raise AnalysisError."""
    parsed = parse_json_safely(text)
    if isinstance(parsed, list):
        parsed = {"items": parsed}
    if not isinstance(parsed, dict):
        hint = " (response was truncated at the token limit)" if truncated else ""
        raise AnalysisError(f"{provider} returned output that is not valid JSON{hint}")
    return parsed


def content_as_text(content: Content, content_type: Optional[str]) -> Optional[str]:
    if content is None:
        return None
    if isinstance(content, str):
        return content
    return extract_text(content, content_type)


class BaseLLMClient:
    """Base client for HTTP LLM API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(
        self,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST a JSON payload with retry logic.

        Raises:
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            default_headers.update(headers)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.base_url, headers=default_headers, json=payload)
                    response.raise_for_status()
                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt)
                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt)
                except httpx.HTTPError as e:
                    await self._handle_generic_error(e, attempt)
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        self.logger.warning(
                            "API returned a non-JSON body",
                            extra={"status_code": response.status_code, "body": response.text[:200]},
                        )
                        raise APIClientError(
                            "API returned a response that is not JSON", e, status_code=response.status_code
                        ) from e

        raise APIClientError(f"Failed to call API after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int):
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"status_code": status_code, "error_body": error_body[:500]}
        )

        # Client errors are final unless it's rate limiting
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(
                f"API Client Error {status_code}: {error_body[:200]}", error, status_code=status_code
            ) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(
                f"API HTTP Error {status_code} after retries", error, status_code=status_code
            ) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int):
        self.logger.warning(f"API Timeout (Attempt {attempt + 1}/{self.max_retries})")
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts", error) from error

    async def _handle_generic_error(self, error: Exception, attempt: int):
        self.logger.warning(
            f"API Generic Error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"error": str(error)}
        )
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}", error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class GeminiAnalysisClient:
    """Content analysis over Google Gemini, which reads audio, video and PDF natively."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        max_retries: int = 3,
        retry_delay: int = 2,
        max_output_tokens: int = 16384,
    ):
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_output_tokens = max_output_tokens

        try:
            self.client = genai.Client(api_key=api_key)
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize Gemini client: {e}", original_error=e) from e
        LOGGER.info(f"Initialized Gemini client with model {self.model}")

    def supports(self, content_type: Optional[str]) -> bool:
        return True

    async def _build_parts(self, content: Content, content_type: Optional[str], prompt: str) -> list:
        parts = [types.Part.from_text(text=prompt)]
        if content is None:
            return parts
        if isinstance(content, str) or content_type in (DOCX_MIME, PPTX_MIME, "text/plain"):
            parts.append(types.Part.from_text(text=content_as_text(content, content_type) or ""))
            return parts

        if len(content) > GEMINI_INLINE_LIMIT_BYTES:
            uploaded = await self.client.aio.files.upload(
                file=io.BytesIO(content),
                config=types.UploadFileConfig(mime_type=content_type),
            )
            parts.append(types.Part.from_uri(file_uri=uploaded.uri, mime_type=uploaded.mime_type or content_type))
        else:
            parts.append(types.Part.from_bytes(data=content, mime_type=content_type))
        return parts

    async def analyze(
        self, content: Content, content_type: Optional[str], options: AnalysisOptions
    ) -> AnalysisResult:
        """Run one analysis call with retries.

        Raises:
            APIClientError: If the provider keeps failing
            AnalysisError: If the output cannot be parsed
        """
        config = types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_output_tokens or self.max_output_tokens,
            response_mime_type="application/json",
        )
        try:
            parts = await self._build_parts(content, content_type, options.prompt)
        except (genai_errors.APIError, httpx.HTTPError) as e:
            status_code = getattr(e, "code", None)
            LOGGER.warning(
                f"Gemini file upload failed: {e}",
                extra={"task": options.task, "status_code": status_code},
            )
            raise APIClientError(f"Gemini file upload failed: {e}", e, status_code=status_code) from e
        started = time.perf_counter()

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=[types.Content(role="user", parts=parts)],
                    config=config,
                )
                break
            except genai_errors.APIError as e:
                status_code = getattr(e, "code", None)
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}",
                    extra={"task": options.task, "status_code": status_code},
                )
                retryable = status_code is None or status_code == 429 or status_code >= 500
                if not retryable or attempt == self.max_retries - 1:
                    raise APIClientError(f"Gemini generation failed: {e}", e, status_code=status_code) from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))
        else:
            raise APIClientError("Gemini generation failed")

        latency_ms = int((time.perf_counter() - started) * 1000)
        usage_metadata = response.usage_metadata
        usage = TokenUsage(
            input_tokens=(usage_metadata.prompt_token_count or 0) if usage_metadata else 0,
            output_tokens=(usage_metadata.candidates_token_count or 0) if usage_metadata else 0,
        )
        truncated = bool(
            response.candidates
            and response.candidates[0].finish_reason == types.FinishReason.MAX_TOKENS
        )
        text = response.text or ""
        if truncated:
            LOGGER.warning("Gemini response hit the output token limit", extra={"task": options.task})

        return AnalysisResult(
            data=parse_analysis_payload(text, self.name, truncated),
            usage=usage,
            latency_ms=latency_ms,
            model=self.model,
            provider=self.name,
            truncated=truncated,
            raw_text=text,
        )


class OpenRouterAnalysisClient:
    """Content analysis over OpenRouter chat completions (text input only)."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: int = 120,
        max_retries: int = 3,
        retry_delay: int = 2,
        max_output_tokens: int = 16384,
    ):
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    def supports(self, content_type: Optional[str]) -> bool:
        return not is_media(content_type)

    async def analyze(
        self, content: Content, content_type: Optional[str], options: AnalysisOptions
    ) -> AnalysisResult:
        if not self.supports(content_type):
            raise AnalysisError(f"{self.name} cannot analyze {content_type} content")

        text_content = content_as_text(content, content_type)
        messages = [{"role": "system", "content": options.prompt + "\n\nRespond with valid JSON only."}]
        if text_content:
            messages.append({"role": "user", "content": text_content})

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_output_tokens or self.max_output_tokens,
            "response_format": {"type": "json_object"},
        }

        started = time.perf_counter()
        response = await self.client.call_api(payload)
        latency_ms = int((time.perf_counter() - started) * 1000)

        choices = response.get("choices") or []
        if not choices:
            raise AnalysisError("Invalid response format from OpenRouter")
        choice = choices[0]
        text = (choice.get("message") or {}).get("content") or ""
        truncated = choice.get("finish_reason") == "length"
        usage_block = response.get("usage") or {}

        return AnalysisResult(
            data=parse_analysis_payload(text, self.name, truncated),
            usage=TokenUsage(
                input_tokens=usage_block.get("prompt_tokens", 0),
                output_tokens=usage_block.get("completion_tokens", 0),
            ),
            latency_ms=latency_ms,
            model=self.model,
            provider=self.name,
            truncated=truncated,
            raw_text=text,
        )


class FallbackAnalysisClient:
    """Primary provider that hands rate-limited calls to a secondary provider."""

    def __init__(self, primary: ContentAnalysisService, fallback: ContentAnalysisService):
        self.primary = primary
        self.fallback = fallback
        self.name = primary.name
        self.model = primary.model

    def supports(self, content_type: Optional[str]) -> bool:
        return self.primary.supports(content_type) or self.fallback.supports(content_type)

    async def analyze(
        self, content: Content, content_type: Optional[str], options: AnalysisOptions
    ) -> AnalysisResult:
        try:
            return await self.primary.analyze(content, content_type, options)
        except APIClientError as e:
            if not e.is_rate_limited or not self.fallback.supports(content_type):
                raise
            LOGGER.warning(
                f"{self.primary.name} rate limited, falling back to {self.fallback.name}",
                extra={"task": options.task},
            )
            return await self.fallback.analyze(content, content_type, options)


class AnalysisClientRegistry:
    """Named analysis clients plus the primary one used for single-model calls."""

    def __init__(self, clients: Dict[str, ContentAnalysisService], primary: str):
        if primary not in clients:
            raise ConfigurationError(f"Primary analysis provider '{primary}' is not configured")
        self._clients = dict(clients)
        self._primary_name = primary

    @property
    def primary(self) -> ContentAnalysisService:
        return self._clients[self._primary_name]

    def names(self) -> list[str]:
        return list(self._clients)

    def has(self, name: str) -> bool:
        return name in self._clients

    def get(self, name: str) -> ContentAnalysisService:
        try:
            return self._clients[name]
        except KeyError:
            raise ConfigurationError(f"Analysis provider '{name}' is not configured") from None


def build_analysis_registry(settings: Settings) -> AnalysisClientRegistry:
    """Build every configured provider client.

    Raises:
        ConfigurationError: If the configured primary provider has no credentials.
    """
    clients: Dict[str, ContentAnalysisService] = {}
    if settings.gemini_api_key:
        clients["gemini"] = GeminiAnalysisClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            max_output_tokens=settings.llm.max_output_tokens,
        )
    if settings.openrouter_api_key:
        clients["openrouter"] = OpenRouterAnalysisClient(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            base_url=settings.openrouter_api_url,
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            max_output_tokens=settings.llm.max_output_tokens,
        )

    provider = settings.llm_provider
    if provider not in ("gemini", "openrouter"):
        raise ConfigurationError(f"Unsupported LLM_PROVIDER: {provider}")
    if provider not in clients:
        raise ConfigurationError(f"{provider.upper()}_API_KEY is required when LLM_PROVIDER={provider}")

    if settings.enable_llm_fallback:
        secondary = next((name for name in clients if name != provider), None)
        if secondary is None:
            LOGGER.warning("ENABLE_LLM_FALLBACK is set but no secondary provider is configured")
        else:
            clients = {**clients, provider: FallbackAnalysisClient(clients[provider], clients[secondary])}

    LOGGER.info(
        "Content analysis providers ready",
        extra={"primary": provider, "providers": list(clients)},
    )
    return AnalysisClientRegistry(clients, primary=provider)
