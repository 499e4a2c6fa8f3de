"""
FastAPI routes for Frame Translator backend.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from adapter.archive import ArchiveAdapter, clean_handle
from adapter.errors import AdapterError
from adapter.gemini import FrameTranslation, GeminiAdapter
from adapter.models import UserProfile
from monitoring import monitor, EventType
from repository import (
    Comparison,
    ComparisonCreate,
    Insight,
    InsightCreate,
    Repository,
    User,
    UserCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Frame Translator"])

DEFAULT_ARGUMENT = "Find meaningful connection points"
PROBE_HANDLE = "_TheExGenesis"
PROBE_TWEET_HISTORY = "This is a test tweet. Just testing the Gemini API integration."

T = TypeVar("T")


# ============================================================================
# Request/Response Models
# ============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(_CamelModel):
    """Health check response."""
    status: str
    timestamp: datetime
    users: int
    insights: int
    comparisons: int


class TranslateRequest(_CamelModel):
    """Request to re-express a text in another user's frame."""
    source_text: Optional[str] = None
    target_handle: Optional[str] = None


class CreateComparisonRequest(_CamelModel):
    """Request to compare two registered users."""
    user_a_id: int
    user_b_id: int
    argument_text: str = Field(default=DEFAULT_ARGUMENT)


class InsightUpdateRequest(_CamelModel):
    """Partial update of an insight; only non-null fields that are sent are changed."""
    description: Optional[str] = None
    topics: Optional[List[str]] = None
    life_experiences: Optional[List[str]] = None
    concepts: Optional[List[str]] = None
    subcultures: Optional[List[str]] = None
    writing_style: Optional[str] = None


# ============================================================================
# Dependency Injection - these get set by the main app
# ============================================================================

def set_dependencies(
    app: FastAPI,
    repository: Repository,
    archive_adapter: ArchiveAdapter,
    gemini_adapter: GeminiAdapter
) -> None:
    """Attach the service dependencies to the app (called from main app)."""
    app.state.repository = repository
    app.state.archive_adapter = archive_adapter
    app.state.gemini_adapter = gemini_adapter


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return value


def get_repository(request: Request) -> Repository:
    return _from_state(request, "repository")


def get_archive_adapter(request: Request) -> ArchiveAdapter:
    return _from_state(request, "archive_adapter")


def get_gemini_adapter(request: Request) -> GeminiAdapter:
    return _from_state(request, "gemini_adapter")


async def _fetch_pair(fetch: Callable[[Any], T], first: Any, second: Any) -> Tuple[T, T]:
    """Run two independent lookups concurrently and await both."""
    a, b = await asyncio.gather(
        asyncio.to_thread(fetch, first),
        asyncio.to_thread(fetch, second),
    )
    return a, b


# ============================================================================
# Routes
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(repo: Repository = Depends(get_repository)):
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        **repo.stats()
    )


# ----------------------------------------------------------------------------
# Diagnostics
# ----------------------------------------------------------------------------

@router.get("/test/supabase")
async def test_archive(archive: ArchiveAdapter = Depends(get_archive_adapter)):
    """Probe the Community Archive with a known handle."""
    try:
        tweets = await archive.get_recent_popular_tweets_async(PROBE_HANDLE)
    except AdapterError as e:
        logger.error(f"Supabase test error: {e}")
        raise HTTPException(status_code=500, detail={"success": False, "message": str(e)})

    return {
        "success": True,
        "tweetsCount": len(tweets),
        "sampleTweet": tweets[0].model_dump() if tweets else None,
    }


@router.get("/test/gemini")
async def test_gemini(gemini: GeminiAdapter = Depends(get_gemini_adapter)):
    """Run a throwaway insight generation against Gemini."""
    result = await gemini.generate_insights_async(PROBE_TWEET_HISTORY)
    return {"success": True, "result": result.model_dump()}


@router.get("/monitor/health")
async def monitor_health():
    """Component-level health."""
    return monitor.get_health_status()


@router.get("/monitor/metrics")
async def monitor_metrics():
    """Request and external API metrics."""
    return monitor.metrics.get_metrics()


@router.get("/monitor/activity")
async def monitor_activity(
    limit: int = Query(default=50, ge=1, le=500, description="Number of events to return"),
    event_type: Optional[EventType] = Query(default=None, description="Only return events of this type")
):
    """Recent activity feed, most recent first."""
    return {"events": monitor.activity.get_recent(limit=limit, event_type=event_type)}


@router.get("/monitor/dashboard")
async def monitor_dashboard():
    """Everything a monitoring dashboard needs in one call."""
    return monitor.get_dashboard_data()


# ----------------------------------------------------------------------------
# Frame translation
# ----------------------------------------------------------------------------

@router.post("/translate", response_model=FrameTranslation)
async def translate(
    request: TranslateRequest,
    archive: ArchiveAdapter = Depends(get_archive_adapter),
    gemini: GeminiAdapter = Depends(get_gemini_adapter)
):
    """Re-express a text in the conceptual frame of another handle."""
    if not request.source_text or not request.target_handle:
        raise HTTPException(status_code=400, detail="Source text and target handle are required")

    target = clean_handle(request.target_handle)
    if not target:
        raise HTTPException(status_code=400, detail="Source text and target handle are required")

    # The target must have an archive before we translate into their frame
    try:
        await archive.get_recent_popular_tweets_async(target)
    except AdapterError:
        raise HTTPException(status_code=404, detail=f"Could not find Twitter profile for @{target}")

    try:
        result = await gemini.translate_between_frames_async(request.source_text, target)
    except AdapterError as e:
        logger.error(f"Translation error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    monitor.activity.add_event(EventType.TRANSLATION, handle=target)
    return result


# ----------------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------------

@router.post("/users", response_model=User)
async def create_user(request: UserCreate, repo: Repository = Depends(get_repository)):
    """Register a user."""
    user = repo.create_user(request)
    monitor.activity.add_event(EventType.USER_CREATED, user_id=user.id, handle=user.twitter_handle)
    return user


@router.get("/users/{user_id}", response_model=User)
async def get_user(user_id: int, repo: Repository = Depends(get_repository)):
    """Get a user by id."""
    user = repo.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/users/{handle}/profile", response_model=UserProfile)
async def get_user_profile(handle: str, archive: ArchiveAdapter = Depends(get_archive_adapter)):
    """Archived popular posts for a handle and the topics derived from them."""
    try:
        return await archive.get_user_profile_async(handle)
    except AdapterError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch profile: {e}")


async def _analyze_tweets(user: User, archive: ArchiveAdapter, gemini: GeminiAdapter):
    """Fetch a user's archived posts and summarize them."""
    try:
        tweets = await archive.get_recent_popular_tweets_async(user.twitter_handle)
    except AdapterError as e:
        raise HTTPException(
            status_code=500,
            detail={"message": f"Failed to process tweets: {e}", "twitterHandle": user.twitter_handle}
        )

    tweet_history = "\n".join(t.full_text for t in tweets)
    if not tweet_history.strip():
        raise HTTPException(
            status_code=400,
            detail={"message": "No tweets available for analysis", "twitterHandle": user.twitter_handle}
        )

    return await gemini.generate_insights_async(tweet_history)


@router.get("/users/{handle}/insights", response_model=Insight)
async def get_user_insights(
    handle: str,
    repo: Repository = Depends(get_repository),
    archive: ArchiveAdapter = Depends(get_archive_adapter),
    gemini: GeminiAdapter = Depends(get_gemini_adapter)
):
    """
    Get a user's insight, generating it from their archive on first request.
    """
    user = repo.get_user_by_handle(clean_handle(handle))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    insight = repo.get_insight(user.id)
    if insight:
        return insight

    analysis = await _analyze_tweets(user, archive, gemini)
    insight = repo.create_insight(InsightCreate(
        user_id=user.id,
        description=analysis.description,
        topics=analysis.topics
    ))
    monitor.activity.add_event(EventType.INSIGHT_GENERATED, user_id=user.id, insight_id=insight.id)
    return insight


@router.post("/users/{handle}/insights/refresh", response_model=Insight)
async def refresh_user_insights(
    handle: str,
    repo: Repository = Depends(get_repository),
    archive: ArchiveAdapter = Depends(get_archive_adapter),
    gemini: GeminiAdapter = Depends(get_gemini_adapter)
):
    """Regenerate an existing insight from the user's current archive."""
    user = repo.get_user_by_handle(clean_handle(handle))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    insight = repo.get_insight(user.id)
    if not insight:
        raise HTTPException(status_code=404, detail="Insight not found")

    analysis = await _analyze_tweets(user, archive, gemini)
    updated = repo.update_insight(insight.id, {
        "description": analysis.description,
        "topics": analysis.topics,
    })
    monitor.activity.add_event(EventType.INSIGHT_UPDATED, user_id=user.id, insight_id=updated.id)
    return updated


@router.patch("/insights/{insight_id}", response_model=Insight)
async def update_insight(
    insight_id: int,
    request: InsightUpdateRequest,
    repo: Repository = Depends(get_repository)
):
    """Change selected fields of an insight."""
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    updated = repo.update_insight(insight_id, changes)
    monitor.activity.add_event(EventType.INSIGHT_UPDATED, user_id=updated.user_id, insight_id=updated.id)
    return updated


# ----------------------------------------------------------------------------
# Comparisons
# ----------------------------------------------------------------------------

@router.post("/comparisons", response_model=Comparison)
async def create_comparison(
    request: CreateComparisonRequest,
    repo: Repository = Depends(get_repository),
    gemini: GeminiAdapter = Depends(get_gemini_adapter)
):
    """
    Explain the common ground between two users from their stored insights.

    Both users must exist and already have an insight.
    """
    user_a, user_b = await _fetch_pair(repo.get_user, request.user_a_id, request.user_b_id)
    if not user_a or not user_b:
        raise HTTPException(status_code=404, detail="One or both users not found")

    insight_a, insight_b = await _fetch_pair(repo.get_insight, user_a.id, user_b.id)
    if not insight_a or not insight_b:
        raise HTTPException(status_code=404, detail={
            "message": "Insights not found for one or both users",
            "details": {
                "userA": {"id": user_a.id, "hasInsight": insight_a is not None},
                "userB": {"id": user_b.id, "hasInsight": insight_b is not None},
            }
        })

    try:
        explanation = await gemini.explain_argument_async(
            insight_a.description,
            insight_b.description,
            request.argument_text,
            user_a.twitter_handle,
            user_b.twitter_handle
        )
    except AdapterError as e:
        logger.error(f"Comparison creation error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not explanation:
        raise HTTPException(status_code=500, detail="Failed to generate explanation")

    comparison = repo.create_comparison(ComparisonCreate(
        user_a_id=user_a.id,
        user_b_id=user_b.id,
        argument_text=request.argument_text,
        explanation=explanation
    ))
    monitor.activity.add_event(
        EventType.COMPARISON_CREATED,
        comparison_id=comparison.id,
        user_a_id=user_a.id,
        user_b_id=user_b.id
    )
    return comparison


@router.get("/comparisons/{comparison_id}", response_model=Comparison)
async def get_comparison(comparison_id: int, repo: Repository = Depends(get_repository)):
    """Get a comparison by id."""
    comparison = repo.get_comparison(comparison_id)
    if not comparison:
        raise HTTPException(status_code=404, detail="Comparison not found")
    return comparison


@router.get("/users/{user_id}/comparisons", response_model=List[Comparison])
async def list_user_comparisons(user_id: int, repo: Repository = Depends(get_repository)):
    """All comparisons a user takes part in."""
    if not repo.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return repo.get_comparisons_by_user(user_id)


__all__ = [
    "router",
    "set_dependencies",
    "get_repository",
    "get_archive_adapter",
    "get_gemini_adapter",
]
