"""
In-memory repository for Frame Translator.

Holds the three entity kinds the service persists for the lifetime of the
process:
- User: a registered username and their social handle
- Insight: a generated summary of one user's post history
- Comparison: a generated explanation of common ground between two users

The Repository is constructed once at startup and handed to the API layer;
nothing else keeps references to stored records. Every read returns a copy.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotFoundError(Exception):
    """Raised when an update targets a record that does not exist."""
    pass


class _Record(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Entities
# ============================================================================

class UserCreate(_Record):
    username: str = Field(min_length=1, description="Display username")
    twitter_handle: str = Field(min_length=1, description="Social handle, without a leading '@'")


class User(UserCreate):
    id: int


class InsightCreate(_Record):
    user_id: int
    description: str
    topics: List[str] = Field(default_factory=list)
    life_experiences: List[str] = Field(default_factory=list)
    concepts: List[str] = Field(default_factory=list)
    subcultures: List[str] = Field(default_factory=list)
    writing_style: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)


class Insight(InsightCreate):
    id: int


class ComparisonCreate(_Record):
    user_a_id: int
    user_b_id: int
    argument_text: str
    explanation: str
    created_at: Optional[datetime] = None


class Comparison(ComparisonCreate):
    id: int
    created_at: datetime


# ============================================================================
# Repository
# ============================================================================

class Repository:
    """
    Process-lifetime storage for users, insights and comparisons.

    Ids are assigned per entity kind starting at 1 and are never reused.
    Lookups return None when nothing matches; updates raise NotFoundError.

    Usage:
        repo = Repository()
        user = repo.create_user(UserCreate(username="alice", twitter_handle="alice"))
        repo.get_user_by_handle("alice")
    """

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._insights: Dict[int, Insight] = {}
        self._comparisons: Dict[int, Comparison] = {}
        self._next_ids = {"user": 1, "insight": 1, "comparison": 1}
        self._lock = threading.Lock()

    def _take_id(self, kind: str) -> int:
        next_id = self._next_ids[kind]
        self._next_ids[kind] = next_id + 1
        return next_id

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, data: UserCreate) -> User:
        """Store a new user. Handles and usernames are not checked for uniqueness."""
        with self._lock:
            user = User(id=self._take_id("user"), **data.model_dump())
            self._users[user.id] = user
        logger.info(f"Created user {user.id} (@{user.twitter_handle})")
        return user.model_copy(deep=True)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def get_user_by_handle(self, handle: str) -> Optional[User]:
        """First user whose handle equals ``handle`` exactly."""
        with self._lock:
            for user in self._users.values():
                if user.twitter_handle == handle:
                    return user.model_copy(deep=True)
        return None

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def create_insight(self, data: InsightCreate) -> Insight:
        with self._lock:
            insight = Insight(id=self._take_id("insight"), **data.model_dump())
            self._insights[insight.id] = insight
        logger.info(f"Created insight {insight.id} for user {insight.user_id}")
        return insight.model_copy(deep=True)

    def get_insight(self, user_id: int) -> Optional[Insight]:
        """
        First insight (in insertion order) owned by ``user_id``.

        Creation does not deduplicate, so a user may own several insights;
        only the earliest is ever returned.
        """
        with self._lock:
            for insight in self._insights.values():
                if insight.user_id == user_id:
                    return insight.model_copy(deep=True)
        return None

    def update_insight(self, insight_id: int, changes: Dict[str, Any]) -> Insight:
        """
        Shallow-merge ``changes`` over an existing insight.

        Raises:
            NotFoundError: If no insight has this id (store is left unchanged)
            ValueError: If ``changes`` names a field an insight does not have
        """
        unknown = set(changes) - set(InsightCreate.model_fields)
        if unknown:
            raise ValueError(f"Unknown insight fields: {sorted(unknown)}")

        with self._lock:
            existing = self._insights.get(insight_id)
            if existing is None:
                raise NotFoundError(f"Insight not found: {insight_id}")

            merged = existing.model_dump()
            merged.update(changes)
            if "last_updated" not in changes:
                merged["last_updated"] = _utcnow()
            updated = Insight.model_validate(merged)
            self._insights[insight_id] = updated

        logger.info(f"Updated insight {insight_id}: {sorted(changes)}")
        return updated.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Comparisons
    # ------------------------------------------------------------------

    def create_comparison(self, data: ComparisonCreate) -> Comparison:
        """Store a comparison. ``created_at`` is always stamped here."""
        fields = data.model_dump()
        fields["created_at"] = _utcnow()
        with self._lock:
            comparison = Comparison(id=self._take_id("comparison"), **fields)
            self._comparisons[comparison.id] = comparison
        logger.info(
            f"Created comparison {comparison.id} between users "
            f"{comparison.user_a_id} and {comparison.user_b_id}"
        )
        return comparison.model_copy(deep=True)

    def get_comparison(self, comparison_id: int) -> Optional[Comparison]:
        with self._lock:
            comparison = self._comparisons.get(comparison_id)
            return comparison.model_copy(deep=True) if comparison else None

    def get_comparisons_by_user(self, user_id: int) -> List[Comparison]:
        """All comparisons where ``user_id`` is on either side, in insertion order."""
        with self._lock:
            return [
                c.model_copy(deep=True)
                for c in self._comparisons.values()
                if c.user_a_id == user_id or c.user_b_id == user_id
            ]

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "users": len(self._users),
                "insights": len(self._insights),
                "comparisons": len(self._comparisons),
            }


__all__ = [
    "Repository",
    "NotFoundError",
    "User",
    "UserCreate",
    "Insight",
    "InsightCreate",
    "Comparison",
    "ComparisonCreate",
]
