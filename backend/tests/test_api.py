"""
End-to-end API tests with mock adapters.

Tests the full flow: API → Repository / Adapters (mocked) → Response
"""

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock, AsyncMock, patch

import requests
from fastapi.testclient import TestClient

from main import app
from api import set_dependencies
from adapter.errors import ExternalServiceError, ResponseParseError
from adapter.gemini import FrameTranslation, GeminiAdapter, InsightAnalysis
from adapter.models import Tweet, UserProfile
from repository import Repository, UserCreate, InsightCreate


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def sample_tweets():
    return [
        Tweet(
            tweet_id=f"t{i}",
            full_text=f"Thoughts on distributed systems #{i}",
            created_at="2024-06-15T12:00:00+00:00",
            favorite_count=100 - i,
            account_id="acct1",
            fts="'distributed'systems'",
        )
        for i in range(3)
    ]


@pytest.fixture
def mock_archive_adapter(sample_tweets):
    """Create a mock archive adapter that returns test data."""
    adapter = Mock()
    adapter.is_configured = True
    adapter.get_recent_popular_tweets_async = AsyncMock(return_value=sample_tweets)
    adapter.get_user_profile_async = AsyncMock(return_value=UserProfile(
        tweets=sample_tweets,
        topics=["distributed", "systems"]
    ))
    return adapter


@pytest.fixture
def mock_gemini_adapter():
    """Create a mock Gemini adapter."""
    adapter = Mock()
    adapter.is_configured = True
    adapter.generate_insights_async = AsyncMock(return_value=InsightAnalysis(
        description="Builds distributed systems",
        topics=["systems", "databases"]
    ))
    adapter.explain_argument_async = AsyncMock(
        return_value="@alice and @bob both value rigor.\n\nSuggested Next Step: co-write a thread."
    )
    adapter.translate_between_frames_async = AsyncMock(return_value=FrameTranslation(
        source_frame="woo-woo",
        target_frame="STEM",
        translation="Attention allocation shapes outcomes."
    ))
    return adapter


@pytest.fixture
def repo():
    return Repository()


@pytest.fixture
def client(repo, mock_archive_adapter, mock_gemini_adapter):
    set_dependencies(app, repo, mock_archive_adapter, mock_gemini_adapter)
    return TestClient(app)


@pytest.fixture
def two_users_with_insights(repo):
    alice = repo.create_user(UserCreate(username="alice", twitter_handle="alice"))
    bob = repo.create_user(UserCreate(username="bob", twitter_handle="bob"))
    repo.create_insight(InsightCreate(user_id=alice.id, description="Builds compilers", topics=["compilers"]))
    repo.create_insight(InsightCreate(user_id=bob.id, description="Writes poetry", topics=["poetry"]))
    return alice, bob


# ============================================================================
# Health & diagnostics
# ============================================================================

class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Frame Translator API"

    def test_health(self, client, two_users_with_insights):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["users"] == 2
        assert data["insights"] == 2
        assert data["comparisons"] == 0
        assert "timestamp" in data

    def test_archive_probe(self, client, sample_tweets):
        response = client.get("/api/test/supabase")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["tweetsCount"] == len(sample_tweets)
        assert data["sampleTweet"]["tweet_id"] == "t0"

    def test_archive_probe_failure(self, client, mock_archive_adapter):
        mock_archive_adapter.get_recent_popular_tweets_async.side_effect = ExternalServiceError(
            "Failed to fetch tweets: 401", status_code=401
        )

        response = client.get("/api/test/supabase")

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Failed to fetch tweets: 401"}

    def test_gemini_probe(self, client):
        response = client.get("/api/test/gemini")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["result"]["description"] == "Builds distributed systems"

    def test_monitor_endpoints(self, client):
        client.post("/api/users", json={"username": "carol", "twitterHandle": "carol"})

        health = client.get("/api/monitor/health")
        assert health.status_code == 200
        assert "components" in health.json()

        metrics = client.get("/api/monitor/metrics")
        assert metrics.status_code == 200
        assert metrics.json()["requests"]["total"] >= 1

        activity = client.get("/api/monitor/activity?event_type=user_created&limit=5")
        assert activity.status_code == 200
        events = activity.json()["events"]
        assert events
        assert all(e["event_type"] == "user_created" for e in events)

        dashboard = client.get("/api/monitor/dashboard")
        assert dashboard.status_code == 200
        data = dashboard.json()
        assert set(data) == {"health", "metrics", "recent_activity", "event_counts_5m"}
        assert data["event_counts_5m"]["user_created"] >= 1

    def test_uninitialized_service(self, client):
        app.state.repository = None

        response = client.get("/api/health")

        assert response.status_code == 503
        assert response.json() == {"message": "Service not initialized"}


# ============================================================================
# Users
# ============================================================================

class TestUsers:

    def test_create_user(self, client):
        response = client.post("/api/users", json={"username": "alice", "twitterHandle": "alice"})

        assert response.status_code == 200
        assert response.json() == {"id": 1, "username": "alice", "twitterHandle": "alice"}

    def test_create_user_accepts_snake_case(self, client):
        response = client.post("/api/users", json={"username": "bob", "twitter_handle": "bob"})

        assert response.status_code == 200
        assert response.json()["twitterHandle"] == "bob"

    def test_user_ids_increase(self, client):
        ids = [
            client.post("/api/users", json={"username": f"u{i}", "twitterHandle": f"u{i}"}).json()["id"]
            for i in range(3)
        ]
        assert ids == [1, 2, 3]

    def test_create_user_invalid_body(self, client):
        response = client.post("/api/users", json={"username": "alice"})

        assert response.status_code == 400
        assert "message" in response.json()

    def test_get_user(self, client):
        created = client.post("/api/users", json={"username": "alice", "twitterHandle": "alice"}).json()

        response = client.get(f"/api/users/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_get_user_not_found(self, client):
        response = client.get("/api/users/42")

        assert response.status_code == 404
        assert response.json() == {"message": "User not found"}

    def test_get_profile(self, client, mock_archive_adapter):
        response = client.get("/api/users/@alice/profile")

        assert response.status_code == 200
        data = response.json()
        assert data["topics"] == ["distributed", "systems"]
        assert len(data["tweets"]) == 3
        mock_archive_adapter.get_user_profile_async.assert_awaited_once_with("@alice")

    def test_get_profile_failure(self, client, mock_archive_adapter):
        mock_archive_adapter.get_user_profile_async.side_effect = ExternalServiceError("down")

        response = client.get("/api/users/alice/profile")

        assert response.status_code == 500
        assert "down" in response.json()["message"]


# ============================================================================
# Insights
# ============================================================================

class TestInsights:

    def test_lazily_generates_insight(self, client, repo, mock_archive_adapter, mock_gemini_adapter):
        repo.create_user(UserCreate(username="alice", twitter_handle="alice"))

        response = client.get("/api/users/@alice/insights")

        assert response.status_code == 200
        data = response.json()
        assert data["userId"] == 1
        assert data["description"] == "Builds distributed systems"
        assert data["topics"] == ["systems", "databases"]
        assert "createdAt" in data

        mock_archive_adapter.get_recent_popular_tweets_async.assert_awaited_once_with("alice")
        history = mock_gemini_adapter.generate_insights_async.await_args[0][0]
        assert history.split("\n")[0] == "Thoughts on distributed systems #0"

    def test_existing_insight_is_reused(self, client, repo, mock_gemini_adapter):
        repo.create_user(UserCreate(username="alice", twitter_handle="alice"))

        first = client.get("/api/users/alice/insights").json()
        second = client.get("/api/users/alice/insights").json()

        assert first == second
        assert mock_gemini_adapter.generate_insights_async.await_count == 1
        assert repo.stats()["insights"] == 1

    def test_unknown_handle(self, client):
        response = client.get("/api/users/nobody/insights")

        assert response.status_code == 404
        assert response.json() == {"message": "User not found"}

    def test_no_tweets(self, client, repo, mock_archive_adapter):
        repo.create_user(UserCreate(username="quiet", twitter_handle="quiet"))
        mock_archive_adapter.get_recent_popular_tweets_async.return_value = []

        response = client.get("/api/users/quiet/insights")

        assert response.status_code == 400
        assert response.json() == {
            "message": "No tweets available for analysis",
            "twitterHandle": "quiet",
        }
        assert repo.stats()["insights"] == 0

    def test_archive_failure(self, client, repo, mock_archive_adapter):
        repo.create_user(UserCreate(username="alice", twitter_handle="alice"))
        mock_archive_adapter.get_recent_popular_tweets_async.side_effect = ExternalServiceError("archive down")

        response = client.get("/api/users/alice/insights")

        assert response.status_code == 500
        data = response.json()
        assert data["message"] == "Failed to process tweets: archive down"
        assert data["twitterHandle"] == "alice"

    def test_refresh_insight(self, client, repo, mock_gemini_adapter, two_users_with_insights):
        alice, _ = two_users_with_insights
        original = repo.get_insight(alice.id)

        response = client.post("/api/users/alice/insights/refresh")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == original.id
        assert data["description"] == "Builds distributed systems"
        assert repo.get_insight(alice.id).description == "Builds distributed systems"
        assert repo.stats()["insights"] == 2

    def test_refresh_without_insight(self, client, repo):
        repo.create_user(UserCreate(username="alice", twitter_handle="alice"))

        response = client.post("/api/users/alice/insights/refresh")

        assert response.status_code == 404
        assert response.json() == {"message": "Insight not found"}

    def test_patch_insight(self, client, repo, two_users_with_insights):
        alice, _ = two_users_with_insights
        insight = repo.get_insight(alice.id)

        response = client.patch(
            f"/api/insights/{insight.id}",
            json={"writingStyle": "terse", "topics": ["compilers", "parsers"]}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["writingStyle"] == "terse"
        assert data["topics"] == ["compilers", "parsers"]
        assert data["description"] == "Builds compilers"

    def test_patch_insight_not_found(self, client, repo):
        response = client.patch("/api/insights/99", json={"description": "x"})

        assert response.status_code == 404
        assert response.json() == {"message": "Insight not found: 99"}
        assert repo.stats()["insights"] == 0


# ============================================================================
# Comparisons
# ============================================================================

class TestComparisons:

    def test_create_comparison(self, client, mock_gemini_adapter, two_users_with_insights):
        alice, bob = two_users_with_insights
        before = datetime.now(timezone.utc)

        response = client.post("/api/comparisons", json={
            "userAId": alice.id,
            "userBId": bob.id,
            "createdAt": "2000-01-01T00:00:00Z",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["userAId"] == alice.id
        assert data["userBId"] == bob.id
        assert data["argumentText"] == "Find meaningful connection points"
        assert "Suggested Next Step:" in data["explanation"]

        created_at = parse_ts(data["createdAt"])
        assert created_at >= before - timedelta(seconds=1)

        mock_gemini_adapter.explain_argument_async.assert_awaited_once_with(
            "Builds compilers",
            "Writes poetry",
            "Find meaningful connection points",
            "alice",
            "bob"
        )

    def test_comparison_round_trip(self, client, two_users_with_insights):
        alice, bob = two_users_with_insights
        created = client.post("/api/comparisons", json={"userAId": alice.id, "userBId": bob.id}).json()

        response = client.get(f"/api/comparisons/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_get_comparison_not_found(self, client):
        response = client.get("/api/comparisons/7")

        assert response.status_code == 404
        assert response.json() == {"message": "Comparison not found"}

    def test_missing_user(self, client, two_users_with_insights):
        alice, _ = two_users_with_insights

        response = client.post("/api/comparisons", json={"userAId": alice.id, "userBId": 99})

        assert response.status_code == 404
        assert response.json() == {"message": "One or both users not found"}

    def test_missing_insight(self, client, repo, two_users_with_insights):
        alice, _ = two_users_with_insights
        carol = repo.create_user(UserCreate(username="carol", twitter_handle="carol"))

        response = client.post("/api/comparisons", json={"userAId": alice.id, "userBId": carol.id})

        assert response.status_code == 404
        data = response.json()
        assert data["message"] == "Insights not found for one or both users"
        assert data["details"]["userA"] == {"id": alice.id, "hasInsight": True}
        assert data["details"]["userB"] == {"id": carol.id, "hasInsight": False}

    def test_invalid_body(self, client):
        response = client.post("/api/comparisons", json={"userAId": "not-a-number"})

        assert response.status_code == 400
        assert "message" in response.json()

    def test_generation_failure(self, client, repo, mock_gemini_adapter, two_users_with_insights):
        alice, bob = two_users_with_insights
        mock_gemini_adapter.explain_argument_async.side_effect = ExternalServiceError("Gemini API error: 500")

        response = client.post("/api/comparisons", json={"userAId": alice.id, "userBId": bob.id})

        assert response.status_code == 500
        assert response.json() == {"message": "Gemini API error: 500"}
        assert repo.stats()["comparisons"] == 0

    def test_list_user_comparisons(self, client, repo, two_users_with_insights):
        alice, bob = two_users_with_insights
        carol = repo.create_user(UserCreate(username="carol", twitter_handle="carol"))
        repo.create_insight(InsightCreate(user_id=carol.id, description="Paints", topics=[]))

        ab = client.post("/api/comparisons", json={"userAId": alice.id, "userBId": bob.id}).json()
        cb = client.post("/api/comparisons", json={"userAId": carol.id, "userBId": bob.id}).json()

        alice_list = client.get(f"/api/users/{alice.id}/comparisons").json()
        bob_list = client.get(f"/api/users/{bob.id}/comparisons").json()

        assert [c["id"] for c in alice_list] == [ab["id"]]
        assert [c["id"] for c in bob_list] == [ab["id"], cb["id"]]

    def test_list_comparisons_unknown_user(self, client):
        response = client.get("/api/users/5/comparisons")

        assert response.status_code == 404


# ============================================================================
# Frame translation
# ============================================================================

class TestTranslate:

    def test_translate(self, client, mock_archive_adapter, mock_gemini_adapter):
        response = client.post("/api/translate", json={
            "sourceText": "Energy flows where attention goes.",
            "targetHandle": "@alice",
        })

        assert response.status_code == 200
        assert response.json() == {
            "sourceFrame": "woo-woo",
            "targetFrame": "STEM",
            "translation": "Attention allocation shapes outcomes.",
        }
        mock_archive_adapter.get_recent_popular_tweets_async.assert_awaited_once_with("alice")
        mock_gemini_adapter.translate_between_frames_async.assert_awaited_once_with(
            "Energy flows where attention goes.", "alice"
        )

    def test_translate_missing_fields(self, client):
        response = client.post("/api/translate", json={"sourceText": "hello"})

        assert response.status_code == 400
        assert response.json() == {"message": "Source text and target handle are required"}

    def test_translate_unknown_profile(self, client, mock_archive_adapter):
        mock_archive_adapter.get_recent_popular_tweets_async.side_effect = ExternalServiceError("404")

        response = client.post("/api/translate", json={"sourceText": "hi", "targetHandle": "ghost"})

        assert response.status_code == 404
        assert response.json() == {"message": "Could not find Twitter profile for @ghost"}

    def test_translate_parse_failure(self, client, mock_gemini_adapter):
        mock_gemini_adapter.translate_between_frames_async.side_effect = ResponseParseError(
            "Could not find a JSON object in response"
        )

        response = client.post("/api/translate", json={"sourceText": "hi", "targetHandle": "alice"})

        assert response.status_code == 500
        assert response.json() == {"message": "Could not find a JSON object in response"}

    def test_translate_bare_at_handle(self, client, mock_archive_adapter, mock_gemini_adapter):
        response = client.post("/api/translate", json={"sourceText": "hi", "targetHandle": "@"})

        assert response.status_code == 400
        assert response.json() == {"message": "Source text and target handle are required"}
        mock_archive_adapter.get_recent_popular_tweets_async.assert_not_called()
        mock_gemini_adapter.translate_between_frames_async.assert_not_called()


# ============================================================================
# Transport failures with a real adapter
# ============================================================================

class TestTransportFailures:

    @patch("adapter.gemini.requests.post")
    def test_comparison_transport_failure_returns_json(
        self, mock_post, repo, mock_archive_adapter, two_users_with_insights
    ):
        mock_post.side_effect = requests.exceptions.ChunkedEncodingError("connection broken")
        gemini = GeminiAdapter(api_key="test_key", api_url="https://gemini.test/v1beta")
        set_dependencies(app, repo, mock_archive_adapter, gemini)
        client = TestClient(app)
        alice, bob = two_users_with_insights

        response = client.post("/api/comparisons", json={"userAId": alice.id, "userBId": bob.id})

        assert response.status_code == 500
        assert "connection broken" in response.json()["message"]
        assert repo.stats()["comparisons"] == 0
