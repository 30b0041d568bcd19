"""OpenAI-compatible chat completion provider (OpenAI, vLLM, LM Studio, etc.)."""

import httpx
import structlog

from repo_planner.exceptions import AIResponseError, ExternalServiceError
from repo_planner.providers.base import CompletionProvider

log = structlog.get_logger(__name__)


class OpenAICompatibleProvider(CompletionProvider):
    """Completion provider for OpenAI-compatible API servers.

    The provider performs exactly one HTTP request per call. Retry and
    fallback policy belong to the calling component, which knows whether a
    deterministic default exists.
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str | None = None,
        timeout: float = 120.0,
    ):
        """Initialize OpenAI-compatible provider.

        Args:
            base_url: API base URL (e.g., https://api.openai.com/v1)
            model: Default model identifier
            api_key: Optional API key for authentication
            timeout: Default request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = httpx.AsyncClient(timeout=timeout, headers=headers)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """Run one chat completion."""
        model = model or self.model
        payload: dict = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        log.debug("completion_requested", model=model, prompt_length=len(user_prompt))

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                timeout=timeout or self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.warning(
                "completion_http_error",
                model=model,
                status_code=e.response.status_code,
            )
            raise ExternalServiceError(
                f"AI service returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                response_text=e.response.text,
            ) from e
        except httpx.TimeoutException as e:
            log.warning("completion_timeout", model=model, timeout=timeout or self.timeout)
            raise ExternalServiceError(f"AI service timed out after {timeout or self.timeout}s") from e
        except httpx.RequestError as e:
            log.warning("completion_request_failed", model=model, error=str(e))
            raise ExternalServiceError(f"AI service request failed: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise AIResponseError("AI service returned invalid JSON", response_text=response.text) from e

        choices = result.get("choices") or []
        if not choices:
            raise AIResponseError("No choices returned from AI service", response_text=response.text)

        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise AIResponseError("AI service returned an empty completion", response_text=response.text)

        usage = result.get("usage", {})
        log.info("completion_received", model=model, tokens=usage.get("total_tokens", 0), length=len(content))
        return content
