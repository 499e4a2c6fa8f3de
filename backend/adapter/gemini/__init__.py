"""
Typed helper wrapping Gemini generateContent flows for the Frame Translator backend.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, List, Optional

import requests
from dotenv import load_dotenv, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import (
    AdapterError,
    ConfigurationMissingError,
    ExternalServiceError,
    ResponseParseError,
    SchemaValidationError,
)
from ..json_utils import extract_json_object

# Import monitoring (lazy to avoid circular imports)
_monitor = None

def _get_monitor():
    global _monitor
    if _monitor is None:
        try:
            from monitoring import monitor
            _monitor = monitor
        except ImportError:
            _monitor = None
    return _monitor

load_dotenv(find_dotenv(usecwd=True))

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "models/gemini-1.5-pro"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------

class GeminiPart(BaseModel):
    text: str


class GeminiContent(BaseModel):
    parts: List[GeminiPart]


class GeminiCandidate(BaseModel):
    content: GeminiContent


class GeminiResponse(BaseModel):
    candidates: List[GeminiCandidate]

    def first_text(self) -> Optional[str]:
        """Text of the first part of the first candidate, if any."""
        if self.candidates and self.candidates[0].content.parts:
            return self.candidates[0].content.parts[0].text
        return None


def decode_generate_response(payload: Any) -> GeminiResponse:
    """
    Decode a raw generateContent payload.

    Raises:
        SchemaValidationError: If the payload does not have the candidates shape
    """
    try:
        return GeminiResponse.model_validate(payload)
    except ValidationError as e:
        raise SchemaValidationError(f"Unexpected Gemini payload: {e.error_count()} validation error(s)") from e


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class InsightAnalysis(BaseModel):
    description: str = Field(description="Description of the person behind the posts")
    topics: List[str] = Field(default_factory=list, description="Topics the person posts about")


class FrameTranslation(BaseModel):
    source_frame: str = Field(alias="sourceFrame", description="Frame detected in the source text")
    target_frame: str = Field(alias="targetFrame", description="Frame associated with the target handle")
    translation: str = Field(description="Source text re-expressed in the target frame")

    model_config = ConfigDict(populate_by_name=True)


MISSING_DESCRIPTION = "AI couldn't generate a description"

UNPARSEABLE_FALLBACK = InsightAnalysis(
    description="This user appears to be interested in technology and social media.",
    topics=["Technology", "Social Media"],
)

UNAVAILABLE_FALLBACK = InsightAnalysis(
    description="Unable to analyze the Twitter profile at this time.",
    topics=["Unknown"],
)

NEXT_STEP_HEADING = "Suggested Next Step:"


class GeminiAdapter:
    """
    Adapter for Gemini API calls with error handling and logging.
    """

    REQUEST_TIMEOUT = 120

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.api_url = (api_url or os.getenv("GEMINI_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.model = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)

        if self.api_key:
            logger.info(f"GeminiAdapter initialized for {self.model}")
        else:
            logger.warning("GeminiAdapter initialized without GEMINI_API_KEY (calls will fail)")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/{self.model}:generateContent"

    def generate_text(
        self,
        prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        top_p: float = 0.95,
        top_k: int = 40,
    ) -> str:
        """
        Generate text for a single prompt.

        Raises:
            ConfigurationMissingError: If GEMINI_API_KEY is not set
            ExternalServiceError: If the API returns an error or is unreachable
            SchemaValidationError: If the response has an unexpected shape
            ResponseParseError: If the response carries no generated text
        """
        if not self.api_key:
            logger.error("Error generating text with Gemini: GEMINI_API_KEY is not set")
            raise ConfigurationMissingError("GEMINI_API_KEY environment variable is not set")

        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
                "topP": top_p,
                "topK": top_k,
            },
        }

        start_time_ms = time.time() * 1000
        try:
            logger.debug(f"Making request to {self.endpoint}")
            try:
                response = requests.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=body,
                    timeout=self.REQUEST_TIMEOUT
                )
            except requests.exceptions.Timeout:
                raise ExternalServiceError("Gemini API request timed out")
            except requests.exceptions.ConnectionError:
                raise ExternalServiceError("Failed to connect to Gemini API")
            except requests.exceptions.RequestException as e:
                raise ExternalServiceError(f"Unexpected error: {e}") from e

            if response.status_code >= 400:
                logger.error(f"Gemini API Error: {response.status_code} - {response.text}")
                raise ExternalServiceError(
                    f"Gemini API error: {response.status_code}",
                    status_code=response.status_code,
                    response_text=response.text
                )

            try:
                data = response.json()
            except ValueError as e:
                raise SchemaValidationError("Gemini API returned a non-JSON body") from e

            text = decode_generate_response(data).first_text()
            if text is None:
                raise ResponseParseError("No content in the response")

            self._record_call(start_time_ms, error=False)
            return text

        except AdapterError as e:
            self._record_call(start_time_ms, error=True, message=str(e))
            logger.error(f"Error generating text with Gemini: {e}")
            raise

    # ---------------------------------------------------------------------
    # Public high-level helpers
    # ---------------------------------------------------------------------

    def generate_insights(self, tweet_history: str) -> InsightAnalysis:
        """
        Summarize a tweet history into a description and topic list.

        Never raises: an unreadable response yields UNPARSEABLE_FALLBACK and a
        failed call yields UNAVAILABLE_FALLBACK.
        """
        logger.info("Generating insights from tweet history")

        prompt = f"""
    Analyze this Twitter history and provide insights in JSON format:
    {{
      "description": "A comprehensive description of the person",
      "topics": ["important topic 1", "important topic 2"]
    }}

    Tweet history:
    {tweet_history}"""

        try:
            text = self.generate_text(prompt, max_tokens=1000, temperature=0.7)
        except Exception as e:
            logger.error(f"Error in Gemini API call: {e}")
            return UNAVAILABLE_FALLBACK.model_copy(deep=True)

        logger.info(f"Raw Gemini response: {text[:100]}...")
        try:
            parsed = extract_json_object(text)
        except ResponseParseError as e:
            logger.warning(f"Error parsing Gemini response: {e}")
            return UNPARSEABLE_FALLBACK.model_copy(deep=True)

        description = parsed.get("description")
        topics = parsed.get("topics")
        return InsightAnalysis(
            description=description if isinstance(description, str) and description else MISSING_DESCRIPTION,
            topics=[str(t) for t in topics] if isinstance(topics, list) else [],
        )

    def explain_argument(
        self,
        user_a_description: str,
        user_b_description: str,
        argument: str,
        handle_a: str,
        handle_b: str,
    ) -> str:
        """Generate prose describing where two users' perspectives meet."""
        prompt = f"""Analyze these two Twitter users and generate a thoughtful synthesis of where their perspectives might meet:

    User @{handle_a}: {user_a_description}

    User @{handle_b}: {user_b_description}

    Theme to explore: {argument}

    Focus on finding meaningful connection points between these two perspectives. Your response should:
    1. Acknowledge both Twitter handles explicitly
    2. Highlight genuine areas of potential connection and shared understanding
    3. End with a specific, actionable suggestion for how these two users could meaningfully interact or collaborate

    Format your response in paragraphs, making sure to reference both @{handle_a} and @{handle_b} by their handles, and end with a section titled "{NEXT_STEP_HEADING}" that proposes a concrete way these users could begin interacting."""

        return self.generate_text(prompt, max_tokens=1024, temperature=0.7)

    def translate_between_frames(self, source_text: str, target_handle: str) -> FrameTranslation:
        """
        Detect the conceptual frame of a text and re-express it in the frame
        of another user.

        Raises:
            ResponseParseError: If the response has no usable JSON object
            Any error raised by generate_text
        """
        prompt = f"""Analyze the following text and translate it into a different conceptual frame.

Source text:
{source_text}

First, detect and name the conceptual frame/paradigm of this text (e.g., "woo-woo", "STEM", "academic", "practical", etc.).
Then, translate this text to match @{target_handle}'s typical communication style and conceptual frame.
Maintain the core meaning but express it in a way that would resonate with {target_handle}'s perspective.

Output your response in this exact JSON format:
{{
  "sourceFrame": "name of detected frame",
  "targetFrame": "name of target frame",
  "translation": "translated text"
}}"""

        response = self.generate_text(prompt, max_tokens=1024, temperature=0.7)

        try:
            result = extract_json_object(response)
            return FrameTranslation.model_validate(result)
        except ValidationError as e:
            logger.error(f"Error parsing translation response: {e}")
            raise ResponseParseError("Translation response is missing required fields") from e
        except ResponseParseError as e:
            logger.error(f"Error parsing translation response: {e}")
            raise

    def _record_call(self, start_time_ms: float, error: bool, message: str = "") -> None:
        latency_ms = (time.time() * 1000) - start_time_ms
        mon = _get_monitor()
        if mon:
            mon.metrics.record_gemini_call(latency_ms, error=error)
            from monitoring import EventType
            if error:
                mon.activity.add_event(EventType.ERROR, error=f"Gemini API: {message[:100]}", model=self.model)
            else:
                mon.activity.add_event(EventType.GEMINI_CALL, model=self.model, latency_ms=round(latency_ms, 1))

    # -------------------------------------------------------------------------
    # Async versions (run blocking calls in thread pool)
    # -------------------------------------------------------------------------

    async def generate_insights_async(self, tweet_history: str) -> InsightAnalysis:
        """Async version of generate_insights."""
        return await asyncio.to_thread(self.generate_insights, tweet_history)

    async def explain_argument_async(
        self,
        user_a_description: str,
        user_b_description: str,
        argument: str,
        handle_a: str,
        handle_b: str,
    ) -> str:
        """Async version of explain_argument."""
        return await asyncio.to_thread(
            self.explain_argument,
            user_a_description,
            user_b_description,
            argument,
            handle_a,
            handle_b
        )

    async def translate_between_frames_async(self, source_text: str, target_handle: str) -> FrameTranslation:
        """Async version of translate_between_frames."""
        return await asyncio.to_thread(self.translate_between_frames, source_text, target_handle)


__all__ = [
    "GeminiAdapter",
    "GeminiResponse",
    "InsightAnalysis",
    "FrameTranslation",
    "decode_generate_response",
    "UNPARSEABLE_FALLBACK",
    "UNAVAILABLE_FALLBACK",
    "MISSING_DESCRIPTION",
    "NEXT_STEP_HEADING",
]
