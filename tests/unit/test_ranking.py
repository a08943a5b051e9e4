"""
Unit tests for trending, category and search ordering.
"""
from datetime import timedelta
import pytest
from core.exceptions import ValidationError
from core.models import VideoRecord, utcnow
from services import ranking


def make(views=0, age=0, public=True, category="Other", **kwargs):
    return VideoRecord(
        uploader_id=kwargs.pop("uploader_id", "u1"),
        title=kwargs.pop("title", f"video {views}"),
        views=views,
        is_public=public,
        category=category,
        created_at=utcnow() - timedelta(minutes=age),
        **kwargs,
    )


class TestTrending:
    def test_excludes_private_and_orders_by_views(self):
        videos = [make(50), make(200), make(75), make(9999, public=False)]
        result = ranking.trending(videos, 2)
        assert [v.views for v in result] == [200, 75]

    def test_ties_broken_newest_first(self):
        old, new = make(10, age=60, title="old"), make(10, age=1, title="new")
        assert [v.title for v in ranking.trending([old, new], 5)] == ["new", "old"]

    def test_does_not_mutate_input(self):
        videos = [make(1), make(2)]
        ranking.trending(videos, 1)
        assert [v.views for v in videos] == [1, 2]

    def test_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            ranking.trending([], 0)


class TestByCategory:
    def test_filters_and_sorts_by_recency(self):
        videos = [
            make(category="Music", age=30, title="older"),
            make(category="Music", age=5, title="newer"),
            make(category="Gaming", title="other"),
            make(category="Music", public=False, title="hidden"),
        ]
        page, total = ranking.by_category(videos, "Music", 1, 10)
        assert [v.title for v in page] == ["newer", "older"]
        assert total == 2

    def test_pagination(self):
        videos = [make(category="News", age=i, title=str(i)) for i in range(5)]
        page, total = ranking.by_category(videos, "News", 2, 2)
        assert [v.title for v in page] == ["2", "3"]
        assert total == 5

    def test_unknown_category(self):
        with pytest.raises(ValidationError):
            ranking.by_category([], "Cats", 1, 10)


class TestBrowse:
    def test_defaults_to_newest_first(self):
        videos = [make(age=30, title="old"), make(age=1, title="new"), make(public=False, title="hidden")]
        assert [v.title for v in ranking.browse(videos)] == ["new", "old"]

    def test_sort_field_and_order(self):
        videos = [make(5, duration=300), make(50, duration=60), make(20, duration=120)]
        assert [v.views for v in ranking.browse(videos, sort_by="views")] == [50, 20, 5]
        assert [v.views for v in ranking.browse(videos, sort_by="duration", sort_order="asc")] == [50, 20, 5]

    def test_equal_keys_fall_back_to_newest(self):
        old, new = make(7, age=60, title="old"), make(7, age=1, title="new")
        assert [v.title for v in ranking.browse([old, new], sort_by="views")] == ["new", "old"]

    def test_all_means_every_category(self):
        videos = [make(category="Music"), make(category="News")]
        assert len(ranking.browse(videos, category="All")) == 2
        assert len(ranking.browse(videos, category="News")) == 1

    @pytest.mark.parametrize("kwargs", [{"sort_by": "hype"}, {"sort_order": "up"}, {"category": "Cats"}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValidationError):
            ranking.browse([], **kwargs)


class TestSearch:
    @pytest.fixture
    def videos(self):
        return [
            make(100, title="Pasta carbonara", description="roman dish", tags=["cooking"], likes=["a"]),
            make(500, title="Cooking basics", description="how to cook", tags=["pasta"], likes=["a", "b", "c"]),
            make(900, title="Minecraft survival", description="gaming", tags=["gaming"]),
            make(5000, title="Secret pasta", public=False),
        ]

    def test_relevance_prefers_title_matches(self, videos):
        result = ranking.search(videos, "pasta")
        assert [v.title for v in result] == ["Pasta carbonara", "Cooking basics"]

    def test_explicit_sorts(self, videos):
        assert [v.views for v in ranking.search(videos, "pasta", sort_by="views")] == [500, 100]
        assert [len(v.likes) for v in ranking.search(videos, "pasta", sort_by="rating")] == [3, 1]

    def test_category_filter(self, videos):
        videos[0].category = "Cooking"
        result = ranking.search(videos, "pasta", category="Cooking")
        assert [v.title for v in result] == ["Pasta carbonara"]

    def test_no_match(self, videos):
        assert ranking.search(videos, "quantum") == []

    @pytest.mark.parametrize("kwargs", [{"query": "  "}, {"query": "pasta", "sort_by": "hype"}])
    def test_invalid_arguments(self, videos, kwargs):
        with pytest.raises(ValidationError):
            ranking.search(videos, **kwargs)
