"""
Comment Thread Management.

This module builds and mutates the parent/reply tree of a video's comments. It
works on records the engagement service has already loaded and never performs
I/O itself; the service persists whatever these functions return.

Threads are one level deep. A reply always points at a top-level comment, and
replying to a reply is rejected here rather than by the data model.

Soft deletion swaps the text for a placeholder but leaves the comment's id, its
`replies` list and its position in the thread untouched, so the shape of a
conversation survives the deletion.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from core.exceptions import ForbiddenError, ValidationError
from core.models import (
    COMMENT_MAX_LENGTH,
    DELETED_PLACEHOLDER,
    REPLY_MAX_LENGTH,
    CommentRecord,
    CommentView,
    UserRole,
    VideoRecord,
    utcnow,
)


def validate_text(text: Optional[str], max_length: int, field: str = "text") -> str:
    """Trim and bound comment text"""
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError(field, text, "must not be empty")
    if len(cleaned) > max_length:
        raise ValidationError(
            field, cleaned[:50], f"must be at most {max_length} characters"
        )
    return cleaned


def max_length_for(comment: CommentRecord) -> int:
    return REPLY_MAX_LENGTH if comment.parent_comment_id else COMMENT_MAX_LENGTH


def add_top_level_comment(video: VideoRecord, author_id: str, text: str) -> CommentRecord:
    return CommentRecord(
        video_id=video.id,
        author_id=author_id,
        text=validate_text(text, COMMENT_MAX_LENGTH),
    )


def add_reply(
    parent: CommentRecord, author_id: str, text: str
) -> Tuple[CommentRecord, CommentRecord]:
    """
    Create a reply under `parent` and append it to the parent's reply list.

    Replies to soft-deleted comments are allowed.

    Returns:
        (reply, parent) with the parent's `replies` extended

    Raises:
        ValidationError: the parent is itself a reply, or the text is invalid
    """
    if parent.parent_comment_id is not None:
        raise ValidationError(
            "parent_comment_id", parent.id, "replies cannot be nested under a reply"
        )

    reply = CommentRecord(
        video_id=parent.video_id,
        author_id=author_id,
        text=validate_text(text, REPLY_MAX_LENGTH),
        parent_comment_id=parent.id,
    )
    parent.replies = list(parent.replies) + [reply.id]
    return reply, parent


def edit_comment(comment: CommentRecord, new_text: str, actor_id: str) -> CommentRecord:
    """
    Replace the text of `comment`, keeping the previous text in `edit_history`.

    Raises:
        ForbiddenError: the actor did not write the comment
        ValidationError: the comment is deleted or the text is invalid
    """
    if actor_id != comment.author_id:
        raise ForbiddenError(
            "Not authorized to update this comment", comment_id=comment.id
        )
    if comment.is_deleted:
        raise ValidationError("comment_id", comment.id, "deleted comments cannot be edited")

    cleaned = validate_text(new_text, max_length_for(comment))
    comment.edit_history = list(comment.edit_history) + [
        {"text": comment.text, "edited_at": utcnow().isoformat()}
    ]
    comment.text = cleaned
    comment.is_edited = True
    return comment


def soft_delete(comment: CommentRecord, actor_id: str, actor_role: str) -> CommentRecord:
    """
    Hide a comment behind the placeholder text.

    Raises:
        ForbiddenError: the actor is neither the author nor an admin
    """
    if actor_id != comment.author_id and actor_role != UserRole.ADMIN.value:
        raise ForbiddenError(
            "Not authorized to delete this comment", comment_id=comment.id
        )
    comment.is_deleted = True
    comment.text = DELETED_PLACEHOLDER
    return comment


def assemble_thread(
    top_level: Iterable[CommentRecord], replies: Iterable[CommentRecord]
) -> List[CommentView]:
    """
    Attach visible replies to their parents.

    Top-level comments come out newest first and each reply list oldest first,
    whatever order the inputs arrive in.
    """
    by_parent: Dict[str, List[CommentRecord]] = defaultdict(list)
    for reply in replies:
        if reply.is_deleted or reply.parent_comment_id is None:
            continue
        by_parent[reply.parent_comment_id].append(reply)

    thread = []
    for comment in sorted(top_level, key=lambda c: (c.created_at, c.id), reverse=True):
        children = sorted(by_parent.get(comment.id, []), key=lambda c: (c.created_at, c.id))
        thread.append(
            CommentView.from_record(
                comment, [CommentView.from_record(child) for child in children]
            )
        )
    return thread
