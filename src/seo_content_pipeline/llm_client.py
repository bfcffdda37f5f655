"""
LLM provider boundary.

The pipeline only needs one call: send a system and a user prompt, get
text back. This module provides:
- ContentProvider: the protocol the pipeline depends on
- AnthropicProvider: Claude via the anthropic SDK over an httpx client
- RetryingProvider: timeouts that grow per attempt, exponential backoff
  with jitter (tenacity), typed errors
- the article prompt used by ContentPipeline.generate
"""

import logging
import time
from typing import Callable, Iterable, Optional, Protocol

import anthropic
import httpx
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .config import ProviderConfig
from .models import LinkTarget, VocabularyTerm

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when a provider call fails."""
    retryable = False


class ProviderTimeout(ProviderError):
    """The call exceeded its timeout."""
    retryable = True


class ProviderRateLimited(ProviderError):
    """The provider refused the call for rate limiting."""
    retryable = True


class ProviderUnavailable(ProviderError):
    """Connection failure or server-side error."""
    retryable = True


class ProviderMalformed(ProviderError):
    """The provider answered, but not with usable text."""
    retryable = False


ARTICLE_SYSTEM_PROMPT = """You are an expert SEO content writer.

Return ONE JSON object and nothing else, with these fields:
- "title": article title
- "excerpt": 1-2 sentence summary
- "metaDescription": at most 160 characters
- "slug": lowercase, hyphenated
- "htmlContent": the full article body as HTML
- "faqs": list of {"question": ..., "answer": ...}
- "schema": schema.org JSON-LD object

HTML RULES:
1. NEVER include an <h1> tag; the page renders the title
2. Use <h2>/<h3> headings, <p>, <ul>/<ol> and <table> only
3. Do not write an FAQ or references section in htmlContent; they are added later
4. Put "htmlContent" BEFORE "faqs" and "schema" in the object

Use the vocabulary terms naturally, as complete phrases. Never stuff keywords."""


def build_article_prompt(
    keyword: str,
    terms: Iterable[VocabularyTerm] = (),
    targets: Iterable[LinkTarget] = (),
    word_count: int = 2500,
) -> str:
    """
    Build the user prompt for a new article.

    Args:
        keyword: Primary keyword / topic.
        terms: Vocabulary terms to work in.
        targets: Internal pages the article may mention.
        word_count: Target article length.

    Returns:
        Prompt text.
    """
    lines = [
        f"Write a comprehensive article about: {keyword}",
        f"Target length: {word_count}+ words.",
    ]
    terms = list(terms)
    if terms:
        lines.append("")
        lines.append("VOCABULARY TERMS (most important first):")
        for term in sorted(terms, key=lambda t: -t.weight):
            lines.append(f"- {term.text} ({term.kind.value}, use {term.recommended_count}x)")
    targets = list(targets)
    if targets:
        lines.append("")
        lines.append("RELATED PAGES (mention their topics where natural):")
        for target in targets:
            lines.append(f"- {target.title}")
    return "\n".join(lines)


class ContentProvider(Protocol):
    """Anything that can turn a prompt pair into text."""

    def send(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout: Optional[float] = None,
    ) -> str:
        ...


class AnthropicProvider:
    """
    Claude provider.

    Args:
        config: Provider settings. The API key falls back to ANTHROPIC_API_KEY.
        client: Pre-built anthropic client (tests, custom transports).
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        client: Optional[anthropic.Anthropic] = None,
    ):
        self.config = config or ProviderConfig()

        if client is not None:
            self.client = client
            return

        if not self.config.api_key:
            raise ProviderError(
                "No API key provided. Set ANTHROPIC_API_KEY environment variable "
                "or pass api_key in ProviderConfig."
            )

        http_client = httpx.Client(
            timeout=httpx.Timeout(self.config.timeout_for_attempt(1), connect=30.0),
            follow_redirects=True,
        )
        self.client = anthropic.Anthropic(
            api_key=self.config.api_key,
            http_client=http_client,
        )

    def send(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send one request.

        Raises:
            ProviderTimeout, ProviderRateLimited, ProviderUnavailable:
                Retryable failures.
            ProviderMalformed: Empty response.
            ProviderError: Any other API failure.
        """
        try:
            response = self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                timeout=timeout or self.config.timeout_for_attempt(1),
            )
        except anthropic.RateLimitError as e:
            raise ProviderRateLimited(f"Rate limited: {e}") from e
        except anthropic.APITimeoutError as e:
            raise ProviderTimeout(f"Request timed out: {e}") from e
        except anthropic.APIConnectionError as e:
            raise ProviderUnavailable(f"Connection failed: {e}") from e
        except anthropic.InternalServerError as e:
            raise ProviderUnavailable(f"Provider error {e.status_code}: {e}") from e
        except anthropic.APIError as e:
            raise ProviderError(f"LLM API call failed: {e}") from e

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise ProviderMalformed("Provider returned an empty response")
        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning("Response hit max_tokens; output is likely truncated")
        return text


class RetryingProvider:
    """
    Wrap a provider with per-attempt timeouts and exponential backoff.

    Attempt n gets ``config.timeout_for_attempt(n)``; the wait before a
    retry is ``backoff_base * 2**(n-1)`` seconds (capped) plus up to
    ``jitter`` seconds. Only retryable ProviderErrors are retried; after the
    last attempt the last error is re-raised.

    Example:
        >>> provider = RetryingProvider(AnthropicProvider())
        >>> text = provider.send(ARTICLE_SYSTEM_PROMPT, prompt, 0.85)
    """

    def __init__(
        self,
        provider: ContentProvider,
        config: Optional[ProviderConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.config = config or ProviderConfig()
        self.sleep = sleep

    def _log_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"Provider attempt {retry_state.attempt_number}/{self.config.max_attempts} "
            f"failed ({type(error).__name__}: {error}); retrying in "
            f"{retry_state.next_action.sleep:.1f}s"
        )

    def send(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout: Optional[float] = None,
    ) -> str:
        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.backoff_base, max=self.config.backoff_max)
            + wait_random(0, self.config.jitter),
            retry=retry_if_exception(
                lambda error: isinstance(error, ProviderError) and error.retryable
            ),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                attempt_timeout = self.config.timeout_for_attempt(number)
                logger.debug(f"Provider attempt {number} (timeout {attempt_timeout:.0f}s)")
                return self.provider.send(
                    system_prompt, user_prompt, temperature, timeout=attempt_timeout
                )
        raise ProviderError("Provider retry loop exited without a result")


def create_provider(config: Optional[ProviderConfig] = None) -> RetryingProvider:
    """Create the default provider: Anthropic with retries."""
    config = config or ProviderConfig()
    return RetryingProvider(AnthropicProvider(config), config)
