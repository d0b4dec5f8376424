"""
AI capability clients.

Two capabilities sit behind OpenAI-compatible chat-completion endpoints:

- StructuredExtractionClient.extract(canonical_text, category_hint)
  -> {"category": ..., "entities": [...]}
- FactCheckClient.verify(claim, source_context) -> bool

Both are explicitly constructed objects passed into the pipeline, so tests
substitute fakes and nothing depends on process-wide client state.

Features:
- Async httpx client with configurable timeout
- Bearer token authentication
- Retry with exponential backoff on 429/5xx and transport errors
- Tolerant JSON parsing (markdown fences, <think> blocks, leading prose)
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

from catalog_crawler.entities import AUTO_DETECT, Claim, ContentCategory
from catalog_crawler.exceptions import ExtractionError, VerificationInconclusive

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """Result of a chat-completion call."""

    success: bool
    data: Any = None
    content: str = ""
    processing_time_ms: float = 0.0
    error: Optional[str] = None
    token_usage: Dict[str, int] = field(default_factory=dict)


def parse_json_response(content: str) -> Any:
    """
    Parse JSON out of a model response.

    Handles ```json fences, <think>...</think> preambles and prose before or
    after the JSON body.

    Raises:
        ValueError: No JSON object or array could be parsed
    """
    if not content or not content.strip():
        raise ValueError("Empty response content")

    cleaned = re.sub(r"<think>.*?</think>\s*", "", content, flags=re.DOTALL)
    cleaned = re.sub(r"```(?:json)?\s*\n?", "", cleaned)
    cleaned = cleaned.replace("```", "").strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    end = max(cleaned.rfind("}"), cleaned.rfind("]"))
    if not starts or end == -1:
        raise ValueError(f"No JSON found in response: {content[:200]}")

    candidate = cleaned[min(starts): end + 1]
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        # Trailing commas are the most common model mistake
        repaired = re.sub(r",\s*([}\]])", r"\1", candidate)
        try:
            return json.loads(repaired)
        except json.JSONDecodeError:
            raise ValueError(f"Invalid JSON in response: {e}") from e


class ChatCompletionClient:
    """
    Async HTTP client for an OpenAI-compatible /chat/completions endpoint.
    """

    DEFAULT_TIMEOUT = 120.0
    MAX_RETRIES = 2
    RETRY_BASE_DELAY = 1.0  # seconds
    RETRY_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        client_factory=None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.client_factory = client_factory or httpx.AsyncClient
        self.completions_endpoint = f"{self.base_url}/chat/completions"

    def _get_headers(self) -> Dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(
        self,
        system_prompt: str,
        user_content: str,
        image_urls: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        if image_urls:
            user_message: Any = [{"type": "text", "text": user_content}] + [
                {"type": "image_url", "image_url": {"url": url}} for url in image_urls
            ]
        else:
            user_message = user_content

        return {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        }

    async def complete_json(
        self,
        system_prompt: str,
        user_content: str,
        image_urls: Optional[List[str]] = None,
    ) -> ChatResult:
        """
        Run a chat completion and parse the reply as JSON.

        Returns:
            ChatResult; success=False with error set on any failure. Never raises.
        """
        if not self.base_url:
            return ChatResult(success=False, error="AI service URL is not configured")

        payload = self._build_payload(system_prompt, user_content, image_urls)
        started = time.monotonic()
        last_error: Optional[str] = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                await asyncio.sleep(self.RETRY_BASE_DELAY * (2 ** (attempt - 1)))

            try:
                async with self.client_factory(timeout=self.timeout) as client:
                    response = await client.post(
                        self.completions_endpoint,
                        json=payload,
                        headers=self._get_headers(),
                    )

                if response.status_code in self.RETRY_CODES:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        f"AI service returned {response.status_code} "
                        f"(attempt {attempt + 1}/{self.max_retries + 1})"
                    )
                    continue

                response.raise_for_status()
                return self._parse_response(response, started)

            except httpx.TimeoutException:
                last_error = f"Request timeout after {self.timeout}s"
                logger.warning(f"AI service timeout (attempt {attempt + 1}/{self.max_retries + 1})")

            except httpx.ConnectError as e:
                last_error = f"Connection error: {e}"
                logger.warning(f"AI service connection error: {e}")

            except httpx.HTTPStatusError as e:
                error = f"HTTP error {e.response.status_code}: {e.response.text[:200]}"
                logger.error(f"AI service rejected request: {error}")
                return ChatResult(
                    success=False,
                    error=error,
                    processing_time_ms=(time.monotonic() - started) * 1000,
                )

            except httpx.HTTPError as e:
                last_error = f"Transport error: {e}"
                logger.warning(f"AI service transport error: {e}")

        return ChatResult(
            success=False,
            error=last_error or "AI service call failed",
            processing_time_ms=(time.monotonic() - started) * 1000,
        )

    def _parse_response(self, response: httpx.Response, started: float) -> ChatResult:
        elapsed_ms = (time.monotonic() - started) * 1000
        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return ChatResult(
                success=False,
                error=f"Unexpected response shape: {e}",
                processing_time_ms=elapsed_ms,
            )

        usage = body.get("usage") or {}
        token_usage = {
            "prompt": int(usage.get("prompt_tokens") or 0),
            "completion": int(usage.get("completion_tokens") or 0),
        }

        try:
            data = parse_json_response(content)
        except ValueError as e:
            logger.warning(f"Failed to parse AI response: {e}")
            return ChatResult(
                success=False,
                content=content,
                error=str(e),
                processing_time_ms=elapsed_ms,
                token_usage=token_usage,
            )

        return ChatResult(
            success=True,
            data=data,
            content=content,
            processing_time_ms=elapsed_ms,
            token_usage=token_usage,
        )


EXTRACTION_SYSTEM_PROMPT = """You extract structured data from Swedish car manufacturer and dealer content.

The input is made of sections. Each starts with a "SOURCE:" line naming the URL it came from.

Rules:
- Prices are whole Swedish kronor as numbers ("319.900:-" = 319900, "3 995 kr/mån" = 3995).
- old_* fields hold the previous price when a discount is shown; leave them out otherwise.
- One entry per vehicle model; trims and motor options go in "variants".
- Never invent values. Leave fields out when the content does not state them.
- For every price and technical figure add a claim: {"field": "<entity field or variants[i].field>",
  "value": <value>, "source_excerpt": "<verbatim text the value was read from>",
  "source_url": "<SOURCE url of that section>"}.

Return ONLY a JSON object:
{
  "category": "campaigns" | "cars" | "transport_cars",
  "entities": [ ... ]
}

Vehicle entity (cars, transport_cars):
{"brand", "title", "model_year", "description" (max 160 chars), "thumbnail_url",
 "variants": [{"name", "price", "old_price", "privatleasing", "old_privatleasing",
   "company_leasing_price", "old_company_leasing_price", "loan_price", "old_loan_price",
   "fuel_type", "transmission", "drivetrain", "leasing_months", "equipment": []}],
 "dimensions": {}, "motor_specs": [], "equipment": [], "claims": []}

Campaign entity (campaigns):
{"title", "description", "brand", "vehicle_types": [], "valid_from", "valid_to",
 "price", "old_price", "monthly_price", "includes": [], "conditions", "claims": []}
"""

CATEGORY_INSTRUCTIONS = {
    ContentCategory.CAMPAIGNS.value: "The content is a campaign/offer page. Use category \"campaigns\".",
    ContentCategory.CARS.value: "The content describes passenger cars. Use category \"cars\".",
    ContentCategory.TRANSPORT_CARS.value: (
        "The content describes commercial/transport vehicles. Use category \"transport_cars\"."
    ),
    AUTO_DETECT: (
        "Decide the category from the content: campaigns for time-limited offers, "
        "transport_cars for vans and commercial vehicles, cars otherwise."
    ),
}

FACT_CHECK_SYSTEM_PROMPT = """You verify single facts about Swedish automotive data against a source excerpt.
Answer ONLY with JSON: {"corroborated": true|false, "note": "<short reason>"}.
corroborated is true only if the source states the value (Swedish price formats count:
"319.900:-" = 319900). If the source does not mention it, answer false."""


class StructuredExtractionClient:
    """Structured-extraction capability backed by a chat-completion model."""

    def __init__(self, chat_client: Optional[ChatCompletionClient] = None):
        self.chat_client = chat_client or ChatCompletionClient(
            base_url=getattr(settings, "AI_SERVICE_URL", ""),
            api_key=getattr(settings, "AI_SERVICE_API_KEY", ""),
            model=getattr(settings, "AI_EXTRACTION_MODEL", ""),
            timeout=getattr(settings, "AI_SERVICE_TIMEOUT", ChatCompletionClient.DEFAULT_TIMEOUT),
        )

    async def extract(
        self,
        canonical_text: str,
        category_hint: str,
        image_urls: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Extract entities from canonical document text.

        Args:
            canonical_text: Rendered canonical document
            category_hint: Content category or "auto-detect"
            image_urls: Images to analyse (price tables rendered as images)

        Returns:
            {"category": str | None, "entities": list of dicts}

        Raises:
            ExtractionError: Capability failure or malformed output
        """
        instruction = CATEGORY_INSTRUCTIONS.get(category_hint, CATEGORY_INSTRUCTIONS[AUTO_DETECT])
        user_content = f"{instruction}\n\nCONTENT:\n{canonical_text}"

        result = await self.chat_client.complete_json(
            EXTRACTION_SYSTEM_PROMPT, user_content, image_urls=image_urls
        )
        if not result.success:
            raise ExtractionError(f"Extraction capability failed: {result.error}")

        data = result.data
        if isinstance(data, list):
            data = {"category": None, "entities": data}
        if not isinstance(data, dict):
            raise ExtractionError(f"Extraction output must be an object, got {type(data).__name__}")

        entities = data.get("entities")
        if entities is None:
            # Older prompt shape: {"cars": [...]} keyed by category
            for key in (c.value for c in ContentCategory):
                if isinstance(data.get(key), list):
                    return {"category": key, "entities": data[key]}
            raise ExtractionError("Extraction output has no entities list")
        if not isinstance(entities, list):
            raise ExtractionError("Extraction output 'entities' is not a list")

        return {"category": data.get("category"), "entities": entities}


class FactCheckClient:
    """Fact-check capability backed by an independent chat-completion model."""

    def __init__(self, chat_client: Optional[ChatCompletionClient] = None):
        self.chat_client = chat_client or ChatCompletionClient(
            base_url=getattr(settings, "FACT_CHECK_SERVICE_URL", ""),
            api_key=getattr(settings, "FACT_CHECK_API_KEY", ""),
            model=getattr(settings, "FACT_CHECK_MODEL", ""),
            timeout=getattr(settings, "AI_SERVICE_TIMEOUT", ChatCompletionClient.DEFAULT_TIMEOUT),
        )

    async def verify(self, claim: Claim, source_context: str) -> bool:
        """
        Check one claim against its source context.

        Returns:
            True when the source corroborates the claim

        Raises:
            VerificationInconclusive: Capability failed or gave no usable answer
        """
        user_content = (
            f"FIELD: {claim.field}\n"
            f"VALUE: {json.dumps(claim.value, ensure_ascii=False)}\n"
            f"SOURCE URL: {claim.source_url or 'unknown'}\n"
            f"SOURCE:\n{source_context}"
        )
        result = await self.chat_client.complete_json(FACT_CHECK_SYSTEM_PROMPT, user_content)
        if not result.success:
            raise VerificationInconclusive(f"Fact-check failed for {claim.field}: {result.error}")

        data = result.data
        if not isinstance(data, dict) or not isinstance(data.get("corroborated"), bool):
            raise VerificationInconclusive(f"Fact-check gave no verdict for {claim.field}")

        if data.get("note"):
            claim.note = str(data["note"])[:500]
        return data["corroborated"]


def get_extraction_client() -> StructuredExtractionClient:
    """Get a structured-extraction client configured from settings."""
    return StructuredExtractionClient()


def get_fact_check_client() -> FactCheckClient:
    """Get a fact-check client configured from settings."""
    return FactCheckClient()
