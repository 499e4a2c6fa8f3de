"""
Community Archive adapter for Frame Translator.

Fetches a handle's most-engaged archived posts from the Community Archive
(Supabase PostgREST endpoint) and derives a coarse topic set from them.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, List, Optional

import requests
from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

from ..errors import (
    AdapterError,
    ConfigurationMissingError,
    ExternalServiceError,
    SchemaValidationError,
)
from ..models import Tweet, UserProfile

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

load_dotenv()

logger = logging.getLogger(__name__)

# Words the archive's fts field carries that say nothing about a topic
TOPIC_STOPWORDS = {"behind", "after", "before", "could", "would"}

_TWEET_LIST = TypeAdapter(List[Tweet])


def decode_tweets(payload: Any) -> List[Tweet]:
    """
    Decode a raw archive payload into Tweet objects.

    Raises:
        SchemaValidationError: If the payload is not a list of tweet records
    """
    try:
        return _TWEET_LIST.validate_python(payload)
    except ValidationError as e:
        raise SchemaValidationError(f"Unexpected archive payload: {e.error_count()} validation error(s)") from e


def clean_handle(handle: str) -> str:
    """Strip any leading '@' characters from a handle."""
    return handle.lstrip("@")


def extract_topics(tweets: List[Tweet]) -> List[str]:
    """
    Derive a deduplicated topic list from the tweets' fts tokens.

    Tokens are split on apostrophes; anything of 3 characters or less and
    the stopwords are dropped.
    """
    topics: List[str] = []
    seen = set()
    for tweet in tweets:
        if not tweet.fts:
            continue
        for word in tweet.fts.split("'"):
            if len(word) <= 3 or word in TOPIC_STOPWORDS:
                continue
            if word not in seen:
                seen.add(word)
                topics.append(word)
    return topics


class ArchiveAdapter:
    """
    Adapter for the Community Archive REST API.

    Usage:
        adapter = ArchiveAdapter()  # Uses COMMUNITY_ARCHIVE_API_URL / SUPABASE_KEY
        tweets = adapter.get_recent_popular_tweets("@someone", limit=25)
    """

    TWEETS_PATH = "/rest/v1/tweets"
    DEFAULT_LIMIT = 25
    REQUEST_TIMEOUT = 30

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None):
        """
        Initialize the archive adapter.

        Args:
            base_url: Archive base URL (or set COMMUNITY_ARCHIVE_API_URL env var)
            api_key: Supabase key (or set SUPABASE_KEY env var)
        """
        base_url = base_url or os.environ.get("COMMUNITY_ARCHIVE_API_URL")
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key or os.environ.get("SUPABASE_KEY") or ""

        if self.base_url:
            logger.info(f"Initialized Community Archive adapter with base URL: {self.base_url}")
        else:
            logger.warning("No COMMUNITY_ARCHIVE_API_URL provided - adapter will fail on API calls")

        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    @property
    def is_configured(self) -> bool:
        """Check if adapter has an archive URL to talk to."""
        return self.base_url is not None

    def get_recent_popular_tweets(self, handle: str, limit: int = DEFAULT_LIMIT) -> List[Tweet]:
        """
        Fetch the most-liked archived posts.

        Args:
            handle: Handle to fetch for (leading '@' is stripped)
            limit: Maximum number of posts

        Returns:
            List of Tweet objects ordered by favorite_count descending

        Raises:
            ConfigurationMissingError: If no archive URL is configured
            ExternalServiceError: If the archive returns an error or is unreachable
            SchemaValidationError: If the payload is malformed
        """
        handle = clean_handle(handle)
        logger.info(f"Attempting to fetch tweets for handle: {handle}")

        try:
            if not self.is_configured:
                raise ConfigurationMissingError("COMMUNITY_ARCHIVE_API_URL environment variable is required")

            params = {
                "select": "*",
                "order": "favorite_count.desc",
                "limit": limit,
            }
            url = f"{self.base_url}{self.TWEETS_PATH}"

            start_time_ms = time.time() * 1000
            try:
                response = requests.get(
                    url,
                    headers=self.headers,
                    params=params,
                    timeout=self.REQUEST_TIMEOUT
                )
            except requests.exceptions.Timeout:
                self._record_call(start_time_ms, handle, error=True)
                raise ExternalServiceError("Community Archive request timed out")
            except requests.exceptions.ConnectionError:
                self._record_call(start_time_ms, handle, error=True)
                raise ExternalServiceError("Failed to connect to Community Archive")
            except requests.exceptions.RequestException as e:
                self._record_call(start_time_ms, handle, error=True)
                raise ExternalServiceError(f"Unexpected error: {e}") from e

            is_error = response.status_code >= 400
            self._record_call(start_time_ms, handle, error=is_error)

            if is_error:
                logger.error(f"API Error: {response.status_code} - {response.text}")
                raise ExternalServiceError(
                    f"Failed to fetch tweets: {response.status_code}",
                    status_code=response.status_code,
                    response_text=response.text
                )

            try:
                data = response.json()
            except ValueError as e:
                raise SchemaValidationError("Community Archive returned a non-JSON body") from e

            tweets = decode_tweets(data)
            logger.info(f"Successfully fetched {len(tweets)} tweets for {handle}")
            return tweets

        except AdapterError as e:
            logger.error(f"Error in get_recent_popular_tweets: {e}")
            raise

    def get_user_profile(self, handle: str) -> UserProfile:
        """
        Fetch a handle's popular posts and the topics derived from them.

        Raises:
            Same errors as get_recent_popular_tweets
        """
        handle = clean_handle(handle)
        logger.info(f"Fetching profile data for: {handle}")

        try:
            tweets = self.get_recent_popular_tweets(handle)
        except AdapterError as e:
            logger.error(f"Error getting user profile: {e}")
            raise

        return UserProfile(tweets=tweets, topics=extract_topics(tweets))

    def _record_call(self, start_time_ms: float, handle: str, error: bool) -> None:
        latency_ms = (time.time() * 1000) - start_time_ms
        mon = _get_monitor()
        if mon:
            mon.metrics.record_archive_call(latency_ms, error=error)
            from monitoring import EventType
            if error:
                mon.activity.add_event(EventType.ERROR, handle=handle, error="Community Archive call failed")
            else:
                mon.activity.add_event(EventType.ARCHIVE_CALL, handle=handle, latency_ms=round(latency_ms, 1))

    # -------------------------------------------------------------------------
    # Async versions (run blocking calls in thread pool)
    # -------------------------------------------------------------------------

    async def get_recent_popular_tweets_async(self, handle: str, limit: int = DEFAULT_LIMIT) -> List[Tweet]:
        """Async version of get_recent_popular_tweets."""
        return await asyncio.to_thread(self.get_recent_popular_tweets, handle, limit)

    async def get_user_profile_async(self, handle: str) -> UserProfile:
        """Async version of get_user_profile."""
        return await asyncio.to_thread(self.get_user_profile, handle)


__all__ = [
    "ArchiveAdapter",
    "decode_tweets",
    "clean_handle",
    "extract_topics",
    "Tweet",  # Re-export for convenience
    "UserProfile",
]
