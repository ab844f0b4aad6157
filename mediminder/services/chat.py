import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

import requests
from huggingface_hub import InferenceClient

from mediminder.core.config import (
    CHAT_BACKOFF_MS,
    CHAT_CACHE_TTL_S,
    CHAT_COOLDOWN_S,
    CHAT_MAX_ATTEMPTS,
    GEMINI_API_KEY,
    GEMINI_BASE_URL,
    GEMINI_MAX_OUTPUT_TOKENS,
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    GEMINI_TIMEOUT_S,
    HF_CHAT_MODEL,
    HF_MAX_TOKENS,
    HF_TEMPERATURE,
    HF_TIMEOUT_S,
)
from mediminder.core.errors import (
    ChatCooldownError,
    ChatEmptyReplyError,
    ChatProviderError,
    ChatQuotaError,
    UnrecognizedResponseShape,
)

logger = logging.getLogger(__name__)

RETRY_MAX_OUTPUT_TOKENS = 512

_QUOTA_MARKERS = ("quota", "billing", "exceeded", "rate limit")


# ---------------------------
# Retry
# ---------------------------

@dataclass
class RetryPolicy:
    max_attempts: int = CHAT_MAX_ATTEMPTS
    backoff_ms: int = CHAT_BACKOFF_MS
    retryable: Callable[[Exception], bool] = lambda e: isinstance(e, ChatProviderError) and e.retryable


async def call_with_retry(
    fn: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
):
    """Run `fn` up to `max_attempts` times, waiting backoff_ms * attempt between tries."""
    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= policy.max_attempts or not policy.retryable(e):
                raise
            delay_ms = policy.backoff_ms * attempt
            logger.warning("attempt %d failed (%s), retrying in %dms", attempt, e, delay_ms)
            await sleep(delay_ms / 1000)
            attempt += 1


# ---------------------------
# Providers
# ---------------------------

class ChatProvider(Protocol):
    name: str

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str: ...


def looks_like_quota_error(message: str) -> bool:
    lower = (message or "").lower()
    return any(m in lower for m in _QUOTA_MARKERS)


def parse_gemini_response(data: Any) -> str:
    """Text of the first candidate of a generateContent response."""
    if not isinstance(data, dict):
        raise UnrecognizedResponseShape(f"Gemini response is not an object: {str(data)[:200]}")

    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        raise UnrecognizedResponseShape(f"Gemini response has no candidates: {str(data)[:200]}")
    if not candidates:
        return ""

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    parts = (first.get("content") or {}).get("parts")
    if isinstance(parts, list):
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    if isinstance(first.get("output_text"), str):
        return first["output_text"]

    raise UnrecognizedResponseShape(f"Gemini candidate has no text: {str(first)[:200]}")


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str = GEMINI_API_KEY,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout_s: int = GEMINI_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        if not self.api_key:
            raise ChatProviderError("GEMINI_API_KEY is missing. Set it in config.env and restart.")

        url = f"{self.base_url}/{self.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": GEMINI_TEMPERATURE,
                "maxOutputTokens": max_tokens or GEMINI_MAX_OUTPUT_TOKENS,
            },
        }

        try:
            res = self.session.post(url, params={"key": self.api_key}, json=payload, timeout=self.timeout_s)
        except requests.Timeout as e:
            raise ChatProviderError(f"Gemini timeout: {e}", retryable=True) from e
        except requests.RequestException as e:
            raise ChatProviderError(f"Gemini network error: {e}", retryable=True) from e

        if res.status_code == 429 or (res.status_code >= 400 and looks_like_quota_error(res.text)):
            raise ChatQuotaError(f"Gemini quota/billing error {res.status_code}: {res.text[:300]}")
        if res.status_code >= 500:
            raise ChatProviderError(f"Gemini {res.status_code}: {res.text[:300]}", retryable=True)
        if res.status_code >= 400:
            raise ChatProviderError(f"Gemini {res.status_code}: {res.text[:300]}")

        try:
            data = res.json()
        except ValueError as e:
            raise UnrecognizedResponseShape(f"Gemini returned non-JSON body: {res.text[:200]}") from e
        return parse_gemini_response(data)


class HuggingFaceProvider:
    name = "huggingface"

    def __init__(self, model: str = HF_CHAT_MODEL, timeout_s: int = HF_TIMEOUT_S, client: Optional[InferenceClient] = None):
        self.model = model
        self.timeout_s = timeout_s
        self._client = client

    def _get_client(self) -> InferenceClient:
        if self._client is not None:
            return self._client
        # read token at runtime so a restart picks up config.env changes
        token = os.getenv("HF_TOKEN", "").strip()
        if not token:
            raise ChatProviderError("HF_TOKEN is missing. Set it in config.env and restart.")
        provider = os.getenv("HF_PROVIDER", "auto").strip() or "auto"
        self._client = InferenceClient(provider=provider, api_key=token, timeout=float(self.timeout_s))
        return self._client

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        client = self._get_client()
        try:
            out = client.chat_completion(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=HF_TEMPERATURE,
                max_tokens=max_tokens or HF_MAX_TOKENS,
            )
        except Exception as e:
            raise ChatProviderError(f"HF inference failed: {e}") from e

        try:
            return out.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise UnrecognizedResponseShape(f"HF chat completion had no message: {str(out)[:200]}") from e


# ---------------------------
# Service
# ---------------------------

def is_meta_or_empty(text: Optional[str]) -> bool:
    t = (text or "").strip().lower()
    return len(t) <= 3 or t == "model"


def _should_fall_back(e: Exception) -> bool:
    return isinstance(e, (ChatQuotaError, ChatEmptyReplyError)) or (
        isinstance(e, ChatProviderError) and e.retryable
    )


class ChatService:
    """
    Primary provider with retry, a fallback provider for quota, network and
    empty-reply failures, an answer cache and a global cooldown between questions.
    """

    def __init__(
        self,
        primary: ChatProvider,
        fallback: Optional[ChatProvider] = None,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cache_ttl_s: float = CHAT_CACHE_TTL_S,
        cooldown_s: float = CHAT_COOLDOWN_S,
    ):
        self.primary = primary
        self.fallback = fallback
        self.policy = policy or RetryPolicy()
        self.clock = clock
        self.sleep = sleep
        self.cache_ttl_s = cache_ttl_s
        self.cooldown_s = cooldown_s
        self._cache: Dict[str, Tuple[str, float]] = {}
        self._last_call: Optional[float] = None

    def init(self) -> None:
        self._cache.clear()
        self._last_call = None
        logger.info("chat service ready (primary=%s, fallback=%s)",
                    self.primary.name, self.fallback.name if self.fallback else None)

    def teardown(self) -> None:
        self._cache.clear()
        self._last_call = None

    async def _generate(self, provider: ChatProvider, prompt: str, max_tokens: Optional[int] = None) -> str:
        return await asyncio.to_thread(provider.generate, prompt, max_tokens)

    async def _ask_primary(self, q: str) -> str:
        text = await call_with_retry(lambda: self._generate(self.primary, q), self.policy, self.sleep)

        if is_meta_or_empty(text):
            logger.warning("%s returned empty/meta reply, retrying with %d tokens", self.primary.name, RETRY_MAX_OUTPUT_TOKENS)
            try:
                text = await self._generate(self.primary, q, RETRY_MAX_OUTPUT_TOKENS)
            except ChatProviderError as e:
                logger.warning("larger-budget retry failed: %s", e)

        text = (text or "").strip()
        if is_meta_or_empty(text):
            raise ChatEmptyReplyError(f"{self.primary.name} returned an empty reply after retry.")
        return text

    async def ask(self, question: str) -> str:
        q = (question or "").strip()
        if not q:
            return ""

        now = self.clock()
        if self._last_call is not None and now - self._last_call < self.cooldown_s:
            raise ChatCooldownError("Please wait a few seconds before sending another question.")
        self._last_call = now

        key = q.lower()
        hit = self._cache.get(key)
        if hit and now - hit[1] < self.cache_ttl_s:
            logger.debug("chat cache hit")
            return hit[0]

        try:
            text = await self._ask_primary(q)
        except (ChatProviderError, UnrecognizedResponseShape) as e:
            if self.fallback is None or not _should_fall_back(e):
                logger.error("%s failed: %s", self.primary.name, e)
                raise

            logger.warning("%s failed (%s), trying %s", self.primary.name, e, self.fallback.name)
            try:
                text = (await self._generate(self.fallback, q)).strip()
            except (ChatProviderError, UnrecognizedResponseShape) as fb_err:
                raise ChatProviderError(
                    f"Both {self.primary.name} and {self.fallback.name} failed. "
                    f"{self.primary.name}: {e}. {self.fallback.name}: {fb_err}"
                ) from fb_err
            if not text:
                raise ChatEmptyReplyError(f"{self.fallback.name} returned an empty reply.") from e

        self._cache[key] = (text, self.clock())
        return text


# ---------------------------
# Health-topic gate
# ---------------------------

HEALTH_KEYWORDS = (
    "health", "doctor", "symptom", "diagnosis", "treatment", "therapy",
    "medicine", "medication", "dose", "prescription", "clinic", "hospital", "nurse",
    "pain", "fever", "cough", "headache", "nausea", "dizzy", "infection",
    "vaccine", "vaccination", "immunization", "mental health", "depression", "anxiety",
    "nutrition", "diet", "calorie", "protein", "sleep", "exercise", "fitness",
    "pregnancy", "childbirth", "pediatrics", "geriatrics", "allergy", "rash",
    "blood pressure", "bp", "heart rate", "cholesterol", "diabetes", "insulin",
    "antibiotic", "antiviral", "antidepressant", "side effect", "contraindication",
    "medical", "urgent care", "emergency", "triage", "tablet", "pill",
)
BODY_WORDS = (
    "head", "stomach", "chest", "back", "arm", "leg", "eye", "ear", "throat",
    "skin", "bleed", "vomit",
)
FINANCE_WORDS = (
    "stock", "share", "nse", "bse", "ipo", "market", "exchange", "crypto", "bitcoin",
    "btc", "eth", "usd", "eur", "sell", "buy", "investment", "portfolio", "dividend",
    "mutual fund", "etf", "forex", "commodity", "gold", "silver", "sensex", "nifty",
    "dow", "nasdaq",
)
OFFTOPIC_PHRASES = (
    "tell me a joke", "poem", "write a song", "story", "movie", "book", "weather",
    "who is", "what is the capital", "programming", "code", "recipe", "how to make", "lyrics",
)

_CURRENCY_RE = re.compile(r"(?:\$|₹|€|\b(?:usd|inr|eur))\s*\d+", re.I)
_PRICE_RE = re.compile(r"\b(?:price|cost|rate|quote|current value|market cap|share price)\b", re.I)


def _has_word(text: str, words, whole: bool = False) -> bool:
    tail = r"(?![a-z])" if whole else ""
    return any(re.search(rf"(?<![a-z]){re.escape(w)}{tail}", text) for w in words)


def is_health_query(text: str) -> bool:
    """True only for questions that look health-related and not off-topic or financial."""
    if not text or not isinstance(text, str):
        return False
    t = text.lower()

    if _has_word(t, OFFTOPIC_PHRASES, whole=True):
        return False
    if _has_word(t, FINANCE_WORDS, whole=True) or _CURRENCY_RE.search(text) or _PRICE_RE.search(text):
        return False

    return _has_word(t, HEALTH_KEYWORDS) or _has_word(t, BODY_WORDS)
