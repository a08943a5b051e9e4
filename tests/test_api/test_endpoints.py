import pytest
from fastapi import status


class TestHealthEndpoints:
    """Test health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_endpoint(self, async_client):
        response = await async_client.get("/healthcheck")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "version" in data

    @pytest.mark.asyncio
    async def test_ping_endpoint(self, async_client):
        response = await async_client.get("/monitoring/ping")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "pong"

    @pytest.mark.asyncio
    async def test_database_endpoint(self, async_client):
        response = await async_client.get("/monitoring/database")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_type"] == "sqlite"
        assert data["info"]["open"] is True


class TestCallerIdentity:
    """Mutating endpoints need the upstream caller id."""

    @pytest.mark.asyncio
    async def test_like_without_user_header(self, async_client, video):
        response = await async_client.post(f"/api/videos/{video.id}/like")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, async_client):
        response = await async_client.get(
            "/healthcheck", headers={"X-Correlation-ID": "trace-123"}
        )
        assert response.headers["X-Correlation-ID"] == "trace-123"
        assert "X-Process-Time" in response.headers


class TestVideoEndpoints:
    """Test reactions, views and listings over HTTP."""

    @pytest.mark.asyncio
    async def test_toggle_like_and_dislike(self, async_client, video):
        headers = {"X-User-Id": "viewer"}

        response = await async_client.post(f"/api/videos/{video.id}/dislike", headers=headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"like_count": 0, "dislike_count": 1}

        response = await async_client.post(f"/api/videos/{video.id}/like", headers=headers)
        assert response.json() == {"like_count": 1, "dislike_count": 0}

    @pytest.mark.asyncio
    async def test_view_counter(self, async_client, video):
        response = await async_client.post(f"/api/videos/{video.id}/view")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"views": 1}

    @pytest.mark.asyncio
    async def test_unknown_video_returns_error_body(self, async_client):
        response = await async_client.post(
            "/api/videos/missing/like", headers={"X-User-Id": "viewer"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["details"] == {"entity": "Video", "id": "missing"}
        assert error["correlation_id"]

    @pytest.mark.asyncio
    async def test_trending(self, async_client, make_video):
        for views in (50, 200, 75):
            await make_video(views=views)
        await make_video(views=9999, is_public=False)

        response = await async_client.get("/api/videos/trending", params={"limit": 2})

        assert response.status_code == status.HTTP_200_OK
        assert [v["views"] for v in response.json()] == [200, 75]

    @pytest.mark.asyncio
    async def test_search_with_bad_sort(self, async_client):
        response = await async_client.get(
            "/api/videos/search", params={"q": "pasta", "sort_by": "hype"}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_category_listing(self, async_client, video):
        response = await async_client.get("/api/videos/category/Cooking")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [v["id"] for v in data["videos"]] == [video.id]
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}

    @pytest.mark.asyncio
    async def test_browse_listing(self, async_client, make_video):
        await make_video(views=3, title="Low")
        await make_video(views=30, title="High")

        response = await async_client.get(
            "/api/videos", params={"sort_by": "views", "sort_order": "desc"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert [v["title"] for v in response.json()["videos"]] == ["High", "Low"]

    @pytest.mark.asyncio
    async def test_video_detail_counts_a_view(self, async_client, video):
        response = await async_client.get(f"/api/videos/{video.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["views"] == 1
        assert data["tags"] == ["pasta", "italian"]
        assert data["created_at"].endswith("+00:00") or data["created_at"].endswith("Z")

    @pytest.mark.asyncio
    async def test_update_video_metadata(self, async_client, users, video):
        response = await async_client.put(
            f"/api/videos/{video.id}",
            json={"title": "Carbonara v2", "category": "Education"},
            headers={"X-User-Id": users["alice"].id},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["title"] == "Carbonara v2"
        assert response.json()["category"] == "Education"

        response = await async_client.put(
            f"/api/videos/{video.id}",
            json={"title": "Mine now"},
            headers={"X-User-Id": users["bob"].id},
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestCommentEndpoints:
    """Test the comment thread lifecycle over HTTP."""

    @pytest.mark.asyncio
    async def test_thread_lifecycle(self, async_client, video):
        author = {"X-User-Id": "author"}

        response = await async_client.post(
            f"/api/videos/{video.id}/comments", json={"text": "Great video"}, headers=author
        )
        assert response.status_code == status.HTTP_201_CREATED
        comment_id = response.json()["id"]

        response = await async_client.post(
            f"/api/comments/{comment_id}/replies",
            json={"text": "Agreed"},
            headers={"X-User-Id": "fan"},
        )
        assert response.status_code == status.HTTP_201_CREATED

        response = await async_client.put(
            f"/api/comments/{comment_id}", json={"text": "Hijack"}, headers={"X-User-Id": "fan"}
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

        response = await async_client.delete(f"/api/comments/{comment_id}", headers=author)
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = await async_client.get(f"/api/videos/{video.id}/comments")
        comments = response.json()["comments"]
        assert len(comments) == 1
        assert comments[0]["is_deleted"] is True
        assert [r["text"] for r in comments[0]["replies"]] == ["Agreed"]

    @pytest.mark.asyncio
    async def test_empty_comment_rejected(self, async_client, video):
        response = await async_client.post(
            f"/api/videos/{video.id}/comments", json={"text": "   "}, headers={"X-User-Id": "a"}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestUserEndpoints:
    """Test subscriptions over HTTP."""

    @pytest.mark.asyncio
    async def test_subscribe_toggle(self, async_client, users):
        alice, bob = users["alice"], users["bob"]

        response = await async_client.post(
            f"/api/users/{bob.id}/subscribe", headers={"X-User-Id": alice.id}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"subscribed": True, "subscriber_count": 1}

        response = await async_client.get(f"/api/users/{bob.id}")
        assert response.json()["subscriber_count"] == 1

    @pytest.mark.asyncio
    async def test_self_subscription_forbidden(self, async_client, users):
        alice = users["alice"]
        response = await async_client.post(
            f"/api/users/{alice.id}/subscribe", headers={"X-User-Id": alice.id}
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"]["code"] == "INVALID_OPERATION"

    @pytest.mark.asyncio
    async def test_create_user(self, async_client):
        response = await async_client.post(
            "/api/users", json={"username": "dave", "email": "dave@example.com"}
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["channel_name"] == "dave"

    @pytest.mark.asyncio
    async def test_update_profile(self, async_client, users):
        bob = users["bob"]
        response = await async_client.put(
            f"/api/users/{bob.id}",
            json={"channel_name": "Bob Builds"},
            headers={"X-User-Id": bob.id},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["channel_name"] == "Bob Builds"

        response = await async_client.put(
            f"/api/users/{bob.id}",
            json={"channel_name": "Hacked"},
            headers={"X-User-Id": users["alice"].id},
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
