"""External analyst: turns a snapshot of items into a summary and a vibe image.

The default implementation talks to the Google Generative Language REST API
with ``httpx``. Anything that provides ``summarize`` and ``render_image`` can
stand in for it (tests use fakes).
"""

import json
import logging
from typing import Any, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from retro.errors import CollaboratorError
from retro.models import Category
from retro.schemas import ItemResponse, RetroAnalysis, VibeImage

logger = logging.getLogger("Retro.analyst")

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TEXT_MODEL = "gemini-3-pro-preview"
DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"

# Structured output schema for the summary call (Gemini OpenAPI subset)
RETRO_ANALYSIS_SCHEMA = {
    "type": "object",
    "properties": {
        "summary": {
            "type": "string",
            "description": (
                "A concise markdown summary: overall sentiment, key themes from what went "
                "well, key areas for improvement, and 2-3 suggested action items"
            ),
        },
        "imagePrompt": {
            "type": "string",
            "description": (
                "An English image prompt showing simple stick figure characters whose poses "
                "and props reflect the TRUE team sentiment, not overly cheerful if there are "
                "significant issues"
            ),
        },
        "sentiment": {
            "type": "object",
            "properties": {
                "overall": {
                    "type": "string",
                    "enum": ["positive", "negative", "mixed", "neutral"],
                },
                "positiveRatio": {
                    "type": "number",
                    "description": "Ratio of positive sentiment from 0.0 to 1.0",
                },
                "keyEmotions": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "2-3 key emotions reflected in the feedback",
                },
            },
            "required": ["overall", "positiveRatio", "keyEmotions"],
        },
    },
    "required": ["summary", "imagePrompt", "sentiment"],
}

SECTION_TITLES = {
    Category.GOOD: "What went well",
    Category.IMPROVE: "What to improve",
    Category.FEEDBACK: "Feedback",
}


class RetroAnalyst(Protocol):
    """Narrow interface to the AI provider."""

    async def summarize(self, items: Sequence[ItemResponse]) -> RetroAnalysis: ...

    async def render_image(self, prompt: str) -> Optional[VibeImage]: ...

    async def aclose(self) -> None: ...


def format_item(item: ItemResponse) -> str:
    likes = f" [{item.like_count} likes]" if item.like_count > 0 else ""
    return f"- {item.text}{likes}"


def build_prompt(items: Sequence[ItemResponse], board_context: str = "", language: str = "English") -> str:
    """Render the facilitator prompt for a snapshot of items."""
    sections = []
    for category, title in SECTION_TITLES.items():
        in_section = [i for i in items if i.category == category]
        lines = "\n".join(format_item(i) for i in in_section) or "- (no items)"
        sections.append(f"**{title} ({len(in_section)} items):**\n{lines}")

    context = f"\nContext for this retrospective: {board_context.strip()}\n" if board_context.strip() else ""

    return (
        "You are a retrospective facilitator analyzing team feedback. "
        "Be HONEST and REALISTIC in your analysis.\n"
        f"{context}"
        f"IMPORTANT: Write the summary in {language}. The imagePrompt MUST be in English.\n\n"
        "NOTE: Items with more likes indicate stronger team agreement. "
        "Weight these items more heavily in your analysis.\n\n"
        + "\n\n".join(sections)
        + "\n\nBased on ALL the above content, provide:\n"
        "1. A summary of the feedback in markdown format\n"
        "2. An image prompt featuring 4-6 cartoonish stick figure characters representing the team:\n"
        "   - Use body language, simple facial expressions and poses to show emotions\n"
        "   - Include simple props related to the feedback themes (laptops, coffee, clocks, charts)\n"
        "   - If there are serious issues, show some figures stressed or tired, not all celebrating\n"
        "   - Only show celebration if the feedback is genuinely positive\n"
        "   - Style: clean minimalist stick figures on a colored background, digital illustration\n"
        "3. Sentiment analysis with the true overall mood and key emotions\n\n"
        "DO NOT be overly positive. Be realistic and balanced."
    )


def extract_text(payload: dict) -> str:
    """Pull the first text part out of a generateContent response."""
    try:
        parts = payload["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise CollaboratorError("Could not extract text from AI response") from e
    for part in parts:
        if isinstance(part, dict) and part.get("text"):
            return part["text"]
    raise CollaboratorError("AI response contained no text part")


def extract_image(payload: dict) -> Optional[VibeImage]:
    """Pull the first inline image out of a generateContent response, if any."""
    candidates = payload.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if inline and inline.get("data"):
            return VibeImage(mime_type=inline.get("mimeType", "image/png"), data=inline["data"])
    return None


def parse_analysis(text: str) -> RetroAnalysis:
    try:
        raw = json.loads(text)
        sentiment = raw.get("sentiment") or {}
        return RetroAnalysis(
            summary=raw["summary"],
            image_prompt=raw.get("imagePrompt"),
            sentiment={
                "overall": sentiment.get("overall", "neutral"),
                "positive_ratio": sentiment.get("positiveRatio", 0.5),
                "key_emotions": sentiment.get("keyEmotions", []),
            },
        )
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError, PydanticValidationError) as e:
        raise CollaboratorError(f"AI returned an unusable analysis: {e}") from e


class GeminiAnalyst:
    """Summaries and vibe images from Gemini models over the REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        text_model: str = DEFAULT_TEXT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
        timeout: float = 120.0,
        board_context: str = "",
        language: str = "English",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.text_model = text_model
        self.image_model = image_model
        self.board_context = board_context
        self.language = language
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"x-goog-api-key": api_key},
            timeout=timeout,
        )

    async def _generate(self, model: str, body: dict) -> dict:
        try:
            response = await self._client.post(f"/models/{model}:generateContent", json=body)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise CollaboratorError(f"{model} timed out") from e
        except httpx.HTTPStatusError as e:
            raise CollaboratorError(
                f"{model} returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise CollaboratorError(f"{model} request failed: {e}") from e

    async def summarize(self, items: Sequence[ItemResponse]) -> RetroAnalysis:
        prompt = build_prompt(items, self.board_context, self.language)
        payload = await self._generate(self.text_model, {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RETRO_ANALYSIS_SCHEMA,
            },
        })
        analysis = parse_analysis(extract_text(payload))
        logger.info(
            f"Analysis complete. Sentiment: {analysis.sentiment.overall} "
            f"| Positive ratio: {analysis.sentiment.positive_ratio}"
        )
        return analysis

    async def render_image(self, prompt: str) -> Optional[VibeImage]:
        logger.info(f"Generating image with prompt: {prompt[:100]}...")
        payload = await self._generate(self.image_model, {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": "16:9"},
            },
        })
        return extract_image(payload)

    async def aclose(self) -> None:
        await self._client.aclose()


class UnconfiguredAnalyst:
    """Stand-in used when no API key is configured: every run fails loudly."""

    async def summarize(self, items: Sequence[ItemResponse]) -> RetroAnalysis:
        raise CollaboratorError("No AI provider configured (set GEMINI_API_KEY)")

    async def render_image(self, prompt: str) -> Optional[VibeImage]:
        return None

    async def aclose(self) -> None:
        return None


def build_analyst(settings: Any) -> RetroAnalyst:
    """Create the analyst described by ``settings``."""
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set, AI summaries are disabled")
        return UnconfiguredAnalyst()
    return GeminiAnalyst(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        text_model=settings.gemini_text_model,
        image_model=settings.gemini_image_model,
        timeout=settings.ai_timeout_seconds,
        board_context=settings.ai_board_context,
        language=settings.ai_summary_language,
    )
