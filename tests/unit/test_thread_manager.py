"""
Unit tests for comment thread construction, edits and soft deletion.
"""
from datetime import timedelta
import pytest
from core.exceptions import ForbiddenError, ValidationError
from core.models import (
    DELETED_PLACEHOLDER,
    CommentRecord,
    UserRole,
    VideoRecord,
    utcnow,
)
from services import thread_manager


@pytest.fixture
def video():
    return VideoRecord(id="v1", uploader_id="owner", title="Video")


@pytest.fixture
def comment(video):
    return thread_manager.add_top_level_comment(video, "author", "  first!  ")


class TestCreation:
    def test_top_level_comment_is_trimmed(self, comment):
        assert comment.text == "first!"
        assert comment.video_id == "v1"
        assert comment.parent_comment_id is None

    @pytest.mark.parametrize("text", ["", "   ", None, "x" * 1001])
    def test_invalid_comment_text(self, video, text):
        with pytest.raises(ValidationError):
            thread_manager.add_top_level_comment(video, "author", text)

    def test_reply_is_linked_both_ways(self, comment):
        reply, parent = thread_manager.add_reply(comment, "replier", "agreed")
        assert reply.parent_comment_id == comment.id
        assert reply.video_id == comment.video_id
        assert parent.replies == [reply.id]

    def test_reply_length_limit(self, comment):
        with pytest.raises(ValidationError):
            thread_manager.add_reply(comment, "replier", "x" * 501)

    def test_reply_to_reply_rejected(self, comment):
        reply, _ = thread_manager.add_reply(comment, "replier", "agreed")
        with pytest.raises(ValidationError):
            thread_manager.add_reply(reply, "someone", "nested")

    def test_reply_to_deleted_comment_allowed(self, comment):
        thread_manager.soft_delete(comment, "author", UserRole.USER.value)
        reply, parent = thread_manager.add_reply(comment, "replier", "still here")
        assert parent.replies == [reply.id]


class TestEdit:
    def test_non_author_forbidden(self, comment):
        with pytest.raises(ForbiddenError):
            thread_manager.edit_comment(comment, "hijacked", "intruder")
        assert comment.edit_history == []
        assert comment.text == "first!"

    def test_author_edit_appends_previous_text(self, comment):
        thread_manager.edit_comment(comment, "second thoughts", "author")
        assert comment.text == "second thoughts"
        assert comment.is_edited is True
        assert len(comment.edit_history) == 1
        assert comment.edit_history[0]["text"] == "first!"
        assert "edited_at" in comment.edit_history[0]

    def test_deleted_comment_cannot_be_edited(self, comment):
        thread_manager.soft_delete(comment, "author", UserRole.USER.value)
        with pytest.raises(ValidationError):
            thread_manager.edit_comment(comment, "resurrected", "author")


class TestSoftDelete:
    def test_keeps_replies_and_sets_placeholder(self, comment):
        first, _ = thread_manager.add_reply(comment, "r1", "one")
        second, _ = thread_manager.add_reply(comment, "r2", "two")
        thread_manager.soft_delete(comment, "author", UserRole.USER.value)

        assert comment.is_deleted is True
        assert comment.text == DELETED_PLACEHOLDER
        assert comment.replies == [first.id, second.id]

    def test_admin_may_delete(self, comment):
        thread_manager.soft_delete(comment, "moderator", UserRole.ADMIN.value)
        assert comment.is_deleted is True

    def test_stranger_forbidden(self, comment):
        with pytest.raises(ForbiddenError):
            thread_manager.soft_delete(comment, "stranger", UserRole.USER.value)
        assert comment.is_deleted is False


class TestAssembleThread:
    def test_ordering_and_deleted_reply_filtering(self):
        now = utcnow()
        older = CommentRecord(id="c1", video_id="v", author_id="a", text="old", created_at=now - timedelta(minutes=5))
        newer = CommentRecord(id="c2", video_id="v", author_id="a", text="new", created_at=now)
        late_reply = CommentRecord(
            id="r2", video_id="v", author_id="b", text="late", parent_comment_id="c1", created_at=now
        )
        early_reply = CommentRecord(
            id="r1",
            video_id="v",
            author_id="b",
            text="early",
            parent_comment_id="c1",
            created_at=now - timedelta(minutes=4),
        )
        hidden_reply = CommentRecord(
            id="r3",
            video_id="v",
            author_id="b",
            text=DELETED_PLACEHOLDER,
            parent_comment_id="c1",
            is_deleted=True,
            created_at=now - timedelta(minutes=3),
        )

        thread = thread_manager.assemble_thread(
            [older, newer], [late_reply, hidden_reply, early_reply]
        )

        assert [c.id for c in thread] == ["c2", "c1"]
        assert thread[0].replies == []
        assert [r.id for r in thread[1].replies] == ["r1", "r2"]
