import pytest
from pydantic import ValidationError

from updown_feed.schemas import Comment, CommentThread, KnownAuthor, Post, UnknownAuthor
from updown_feed.schemas.author import UserProfile, author_from_profile


def _post_row(**overrides):
    row = {
        "id": "p1",
        "user_id": "u1",
        "activity_type": "Cykling",
        "title": "Evening ride",
        "created_at": "2024-01-01T10:00:00Z",
        "image_url": "https://cdn.test/route.png",
        "profiles": {"username": "anna", "avatar_url": "https://cdn.test/a.png", "is_pro_member": True},
        "workout_post_likes": [{"count": 4}],
        "workout_post_comments": [{"count": 2}],
    }
    row.update(overrides)
    return row


def test_post_flattens_join_rows():
    post = Post.model_validate(_post_row())

    assert post.author == KnownAuthor(name="anna", avatar_url="https://cdn.test/a.png", is_pro=True)
    assert post.like_count == 4
    assert post.comment_count == 2
    assert post.has_known_author
    assert post.media_urls == ["https://cdn.test/route.png", "https://cdn.test/a.png"]


def test_post_profile_list_and_missing_aggregates():
    post = Post.model_validate(
        _post_row(profiles=[{"username": "bo"}], workout_post_likes=[], workout_post_comments=None)
    )

    assert post.author == KnownAuthor(name="bo")
    assert post.like_count == 0
    assert post.comment_count is None


def test_post_without_username_has_unknown_author():
    post = Post.model_validate(_post_row(profiles={"username": None}))

    assert isinstance(post.author, UnknownAuthor)
    assert not post.has_known_author


def test_post_reloads_from_its_own_dump():
    post = Post.model_validate(_post_row())

    reloaded = Post.model_validate_json(post.model_dump_json())

    assert reloaded == post
    assert isinstance(reloaded.author, KnownAuthor)


def test_post_rejects_negative_counts():
    with pytest.raises(ValidationError):
        Post.model_validate(_post_row(like_count=-1))


def test_posts_are_immutable():
    post = Post.model_validate(_post_row())
    with pytest.raises(ValidationError):
        post.like_count = 10


def test_comment_reads_backend_row():
    comment = Comment.model_validate(
        {
            "id": "c1",
            "workout_post_id": "p1",
            "user_id": "u1",
            "content": "Strong!",
            "parent_comment_id": None,
            "created_at": "2024-01-01T10:00:00Z",
            "comment_likes": [{"count": 3}],
        }
    )

    assert comment.post_id == "p1"
    assert comment.like_count == 3
    assert comment.is_root
    assert isinstance(comment.author, UnknownAuthor)
    assert comment.to_row()["workout_post_id"] == "p1"
    assert "like_count" not in comment.to_row()


def test_comment_null_like_count_defaults_to_zero():
    comment = Comment.model_validate(
        {
            "id": "c1",
            "post_id": "p1",
            "user_id": "u1",
            "content": "x",
            "created_at": "2024-01-01T10:00:00Z",
            "like_count": None,
        }
    )
    assert comment.like_count == 0


def test_comment_thread_size_counts_root_and_replies():
    root = Comment(id="r", post_id="p", user_id="u", content="a", created_at="2024-01-01T10:00:00Z")
    reply = root.model_copy(update={"id": "a", "parent_comment_id": "r"})

    assert CommentThread(root=root, replies=[reply]).size == 2


def test_author_from_profile_variants():
    assert isinstance(author_from_profile(None), UnknownAuthor)
    assert isinstance(author_from_profile({"username": ""}), UnknownAuthor)
    assert UserProfile(id="u1", username="cia", avatar_url="").to_author() == KnownAuthor(name="cia")
