"""
OpenAI vision client for recipe extraction.
Images go through Chat Completions with an image_url part and HTML pages go
through the same endpoint as trimmed text. PDFs go through the Responses API
as an input_file.
"""

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup
from openai import AsyncOpenAI
from pydantic import ValidationError

from ..core.config import Settings, get_settings
from ..core.errors import AnalysisError, ErrorCode
from ..models.analysis import AnalysisResult
from .prompts import RECIPE_ANALYSIS_PROMPT, RECIPE_HTML_ANALYSIS_PROMPT, Prompt, prompt_tag

log = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    ("rawText", str),
    ("description", str),
    ("confidence", (int, float)),
    ("contentType", str),
)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
NON_CONTENT_TAGS = ["script", "style"]


def sanitize_nulls(value: Any) -> Any:
    """Recursively drop None values (JSON null) from dicts and lists."""
    if isinstance(value, dict):
        return {k: sanitize_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [sanitize_nulls(v) for v in value if v is not None]
    return value


def parse_analysis_response(content: str) -> AnalysisResult:
    """Pull the JSON object out of a model reply and validate it.

    The reply may carry prose around the object. Any failure is a retryable
    parse_error.
    """
    try:
        match = _JSON_OBJECT.search(content)
        if not match:
            raise ValueError("No JSON found in response")

        parsed = json.loads(match.group(0))
        if not isinstance(parsed, dict):
            raise ValueError("Response JSON is not an object")

        for field, kind in REQUIRED_FIELDS:
            value = parsed.get(field)
            if not isinstance(value, kind) or isinstance(value, bool):
                raise ValueError(f"Missing {field} field")

        return AnalysisResult.model_validate(sanitize_nulls(parsed))
    except (ValueError, ValidationError) as e:
        raise AnalysisError(ErrorCode.PARSE_ERROR, f"Failed to parse OpenAI response: {e}", True) from e


def prepare_html_for_model(html: str, max_chars: int = 120_000) -> str:
    """Strip <script>/<style> blocks and cap the length sent to the model."""
    soup = BeautifulSoup(html, features="html.parser")
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()
    return str(soup)[:max_chars]


class OpenAIVisionClient:
    def __init__(self, settings: Settings | None = None, client: Any = None):
        self.settings = settings or get_settings()
        self._client = client

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
            log.info("🔌 Closed OpenAI client")

    def _ensure_client(self):
        if self._client is None:
            if not self.settings.openai_api_key:
                raise AnalysisError(ErrorCode.API_KEY_INVALID, "OPENAI_API_KEY not configured", False)
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def _complete(self, prompt: Prompt, content: list) -> AnalysisResult:
        client = self._ensure_client()
        log.info(f"📤 Sending {prompt_tag(prompt)} request to {self.settings.openai_model}")

        response = await client.chat.completions.create(
            model=self.settings.openai_model,
            messages=[{"role": "user", "content": [{"type": "text", "text": prompt.content}, *content]}],
            max_tokens=self.settings.max_tokens,
        )

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise AnalysisError(ErrorCode.PARSE_ERROR, "No content in OpenAI response", True)

        result = parse_analysis_response(text)
        log.info(f"📨 Extraction finished: contentType={result.content_type} confidence={result.confidence}")
        return result

    async def analyze_image(self, image_url: str) -> AnalysisResult:
        return await self._complete(
            RECIPE_ANALYSIS_PROMPT,
            [{"type": "image_url", "image_url": {"url": image_url, "detail": "high"}}],
        )

    async def analyze_html(self, html: str) -> AnalysisResult:
        prepared = prepare_html_for_model(html, self.settings.max_html_input_chars)
        return await self._complete(RECIPE_HTML_ANALYSIS_PROMPT, [{"type": "text", "text": prepared}])

    async def analyze_pdf(self, pdf_url: str) -> AnalysisResult:
        client = self._ensure_client()
        prompt = RECIPE_ANALYSIS_PROMPT
        log.info(f"📤 Sending {prompt_tag(prompt)} PDF request to {self.settings.openai_model}")

        response = await client.responses.create(
            model=self.settings.openai_model,
            input=[
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": prompt.content},
                        {"type": "input_file", "file_url": pdf_url},
                    ],
                }
            ],
        )

        text = response.output_text
        if not text:
            raise AnalysisError(ErrorCode.PARSE_ERROR, "No content in OpenAI response", True)
        return parse_analysis_response(text)
