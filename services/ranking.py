"""
Ranking Engine

Orders video snapshots for the listing endpoints: trending, per-category,
search and a channel's uploads. Every function here is read-only and works
on whatever list the caller hands in; counters are never touched.
"""

import re
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from core.exceptions import ValidationError
from core.models import CATEGORIES, VideoRecord

T = TypeVar("T")

SORT_OPTIONS = ("relevance", "date", "views", "rating")
LISTING_SORTS = ("created_at", "views", "title", "duration", "rating")
SORT_ORDERS = ("asc", "desc")

# Per-field weight of a matching query term
FIELD_WEIGHTS = {"title": 3, "tags": 2, "description": 1}

_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(value: str) -> List[str]:
    return [token.lower() for token in _TOKEN.findall(value or "")]


def validate_category(category: Optional[str]) -> Optional[str]:
    """`None` and "All" mean no category filter"""
    if category is None or category == "All":
        return None
    if category not in CATEGORIES:
        raise ValidationError("category", category, f"must be one of {', '.join(CATEGORIES)}")
    return category


def paginate(items: Sequence[T], page: int, page_size: int) -> Tuple[List[T], int]:
    if page < 1:
        raise ValidationError("page", page, "must be at least 1")
    if page_size < 1:
        raise ValidationError("page_size", page_size, "must be at least 1")
    start = (page - 1) * page_size
    return list(items[start : start + page_size]), len(items)


def _newest_first(video: VideoRecord):
    return video.created_at


def trending(videos: Iterable[VideoRecord], limit: int) -> List[VideoRecord]:
    """Public videos by views, newest first among equal view counts"""
    if limit < 1:
        raise ValidationError("limit", limit, "must be at least 1")
    public = [v for v in videos if v.is_public]
    # Two stable passes: recency is the tie-break for views
    public.sort(key=_newest_first, reverse=True)
    public.sort(key=lambda v: v.views, reverse=True)
    return public[:limit]


def by_category(
    videos: Iterable[VideoRecord], category: str, page: int, page_size: int
) -> Tuple[List[VideoRecord], int]:
    category = validate_category(category)
    matching = [
        v for v in videos if v.is_public and (category is None or v.category == category)
    ]
    matching.sort(key=_newest_first, reverse=True)
    return paginate(matching, page, page_size)


def browse(
    videos: Iterable[VideoRecord],
    category: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> List[VideoRecord]:
    """Public videos, optionally in one category, ordered by a single field"""
    if sort_by not in LISTING_SORTS:
        raise ValidationError("sort_by", sort_by, f"must be one of {', '.join(LISTING_SORTS)}")
    if sort_order not in SORT_ORDERS:
        raise ValidationError("sort_order", sort_order, "must be 'asc' or 'desc'")
    category = validate_category(category)

    listed = [
        v for v in videos if v.is_public and (category is None or v.category == category)
    ]
    listed.sort(key=_newest_first, reverse=True)
    listed.sort(key=_LISTING_KEYS[sort_by], reverse=sort_order == "desc")
    return listed


def channel_videos(
    videos: Iterable[VideoRecord], uploader_id: str, page: int, page_size: int
) -> Tuple[List[VideoRecord], int]:
    uploads = [v for v in videos if v.is_public and v.uploader_id == uploader_id]
    uploads.sort(key=_newest_first, reverse=True)
    return paginate(uploads, page, page_size)


def relevance(video: VideoRecord, terms: Sequence[str]) -> int:
    """Weighted count of query terms found in title, tags and description"""
    fields = {
        "title": Counter(tokenize(video.title)),
        "tags": Counter(token for tag in video.tags for token in tokenize(tag)),
        "description": Counter(tokenize(video.description)),
    }
    return sum(
        FIELD_WEIGHTS[name] * counts[term]
        for term in terms
        for name, counts in fields.items()
    )


_LISTING_KEYS: Dict[str, Callable[[VideoRecord], object]] = {
    "created_at": lambda v: v.created_at,
    "views": lambda v: v.views,
    "title": lambda v: v.title.lower(),
    "duration": lambda v: v.duration,
    "rating": lambda v: len(v.likes),
}

_SORT_KEYS: Dict[str, Callable[[VideoRecord], object]] = {
    "date": lambda v: v.created_at,
    "views": lambda v: v.views,
    "rating": lambda v: len(v.likes),
}


def search(
    videos: Iterable[VideoRecord],
    query: str,
    category: Optional[str] = None,
    sort_by: str = "relevance",
) -> List[VideoRecord]:
    """
    Public videos matching `query`, ordered by relevance or by an explicit
    field (date, views, rating). Ties fall back to newest first.
    """
    terms = list(dict.fromkeys(tokenize(query)))
    if not terms:
        raise ValidationError("q", query, "search query must not be empty")
    if sort_by not in SORT_OPTIONS:
        raise ValidationError("sort_by", sort_by, f"must be one of {', '.join(SORT_OPTIONS)}")
    category = validate_category(category)

    scored = []
    for video in videos:
        if not video.is_public:
            continue
        if category is not None and video.category != category:
            continue
        score = relevance(video, terms)
        if score > 0:
            scored.append((score, video))

    scored.sort(key=lambda pair: pair[1].created_at, reverse=True)
    if sort_by == "relevance":
        scored.sort(key=lambda pair: pair[0], reverse=True)
    else:
        key = _SORT_KEYS[sort_by]
        scored.sort(key=lambda pair: key(pair[1]), reverse=True)
    return [video for _, video in scored]
