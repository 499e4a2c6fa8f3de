"""
Shared data models for adapters.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class Tweet(BaseModel):
    """
    A single archived post as returned by the Community Archive.

    Attributes:
        tweet_id: Unique post ID
        full_text: Full post text
        created_at: Creation timestamp as sent by the archive
        favorite_count: Like count
        account_id: Author account ID
        fts: Full-text-search token string (apostrophe separated)
    """
    tweet_id: str = Field(description="Unique post ID")
    full_text: str = Field(description="Full post text")
    created_at: str = Field(description="Creation timestamp as sent by the archive")
    favorite_count: int = Field(description="Like count")
    account_id: str = Field(description="Author account ID")
    retweet_count: Optional[int] = Field(default=None)
    reply_to_tweet_id: Optional[str] = Field(default=None)
    reply_to_user_id: Optional[str] = Field(default=None)
    reply_to_username: Optional[str] = Field(default=None)
    fts: Optional[str] = Field(default=None, description="Full-text-search tokens")
    archive_upload_id: Optional[int] = Field(default=None)
    updated_at: Optional[str] = Field(default=None)


class UserProfile(BaseModel):
    """Archived posts for a handle plus the topics derived from them."""
    tweets: List[Tweet] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)


__all__ = ["Tweet", "UserProfile"]
