from tests.factories import OTHER_USER_ID, VIEWER_ID, make_comment
from updown_feed.services.threads import CommentThreadBuilder


def _builder(*comments):
    builder = CommentThreadBuilder("post-a")
    builder.rebuild(comments)
    return builder


def _shape(builder):
    return [(t.root.id, [r.id for r in t.replies]) for t in builder.threads]


def test_reply_to_reply_is_flattened_into_root_thread():
    root = make_comment("R", created_at="2024-01-01T10:00:00Z")
    reply = make_comment("A", parent_comment_id="R", created_at="2024-01-01T10:01:00Z")
    nested = make_comment("B", parent_comment_id="A", created_at="2024-01-01T10:02:00Z")

    builder = _builder(nested, reply, root)

    assert _shape(builder) == [("R", ["A", "B"])]
    assert builder.comment_count == 3


def test_rebuild_drops_duplicate_ids_and_orders_roots_oldest_first():
    late = make_comment("late", created_at="2024-01-02T10:00:00Z")
    early = make_comment("early", created_at="2024-01-01T10:00:00Z")

    builder = _builder(late, early, late)

    assert _shape(builder) == [("early", []), ("late", [])]


def test_rebuild_treats_reply_with_missing_parent_as_root():
    orphan = make_comment("orphan", parent_comment_id="gone")

    assert _shape(_builder(orphan)) == [("orphan", [])]


def test_rebuild_survives_parent_cycles():
    first = make_comment("x", parent_comment_id="y", created_at="2024-01-01T10:00:00Z")
    second = make_comment("y", parent_comment_id="x", created_at="2024-01-01T10:01:00Z")

    builder = _builder(first, second)

    assert builder.comment_count == 2


def test_append_is_idempotent():
    builder = _builder(make_comment("R"))
    reply = make_comment("A", parent_comment_id="R")

    assert builder.append(reply) is True
    assert builder.append(reply) is False
    assert _shape(builder) == [("R", ["A"])]


def test_insert_reply_to_a_reply_lands_in_root_thread_sorted():
    builder = _builder(
        make_comment("R", created_at="2024-01-01T10:00:00Z"),
        make_comment("A", parent_comment_id="R", created_at="2024-01-01T10:05:00Z"),
    )

    builder.insert_reply(
        make_comment("B", parent_comment_id="A", created_at="2024-01-01T10:06:00Z")
    )
    builder.insert_reply(
        make_comment("C", parent_comment_id="R", created_at="2024-01-01T10:01:00Z")
    )

    assert _shape(builder) == [("R", ["C", "A", "B"])]


def test_insert_reply_with_unknown_parent_starts_new_thread():
    builder = _builder(make_comment("R"))

    assert builder.insert_reply(make_comment("A", parent_comment_id="missing")) is True

    assert _shape(builder) == [("R", []), ("A", [])]


def test_remove_root_drops_whole_thread():
    builder = _builder(
        make_comment("R"),
        make_comment("A", parent_comment_id="R", created_at="2024-01-01T10:01:00Z"),
        make_comment("S", created_at="2024-01-01T11:00:00Z"),
    )

    removed = builder.remove("R")

    assert [c.id for c in removed] == ["R", "A"]
    assert _shape(builder) == [("S", [])]
    assert builder.remove("R") == []


def test_remove_reply_keeps_root():
    builder = _builder(make_comment("R"), make_comment("A", parent_comment_id="R"))

    assert [c.id for c in builder.remove("A")] == ["A"]
    assert _shape(builder) == [("R", [])]


def test_toggle_like_twice_restores_exact_state():
    builder = _builder(make_comment("R", like_count=3))

    liked = builder.toggle_like("R", VIEWER_ID)
    assert liked.is_liked_by_current_user is True
    assert liked.like_count == 4

    restored = builder.toggle_like("R", VIEWER_ID)
    assert restored.is_liked_by_current_user is False
    assert restored.like_count == 3
    assert builder.toggle_like("missing") is None


def test_realtime_like_from_other_user_only_moves_count():
    builder = _builder(make_comment("R", like_count=1))

    assert builder.apply_realtime_like_delta("R", OTHER_USER_ID, 1, VIEWER_ID) is True
    comment = builder.find("R")
    assert comment.like_count == 2
    assert comment.is_liked_by_current_user is False

    builder.apply_realtime_like_delta("R", OTHER_USER_ID, -5, VIEWER_ID)
    assert builder.find("R").like_count == 0


def test_realtime_echo_of_own_toggle_is_ignored():
    builder = _builder(make_comment("R", like_count=0))
    builder.toggle_like("R", VIEWER_ID)

    assert builder.apply_realtime_like_delta("R", VIEWER_ID, 1, VIEWER_ID) is False
    assert builder.find("R").like_count == 1


def test_own_like_from_another_device_is_applied():
    builder = _builder(make_comment("R", like_count=0))

    assert builder.apply_realtime_like_delta("R", VIEWER_ID, 1, VIEWER_ID) is True
    comment = builder.find("R")
    assert comment.is_liked_by_current_user is True
    assert comment.like_count == 1


def test_can_reply_only_two_levels_deep():
    builder = CommentThreadBuilder("post-a")
    builder.append(make_comment("R"))
    builder.append(make_comment("A", parent_comment_id="R", created_at="2024-01-01T10:01:00Z"))
    builder.append(make_comment("B", parent_comment_id="A", created_at="2024-01-01T10:02:00Z"))

    assert builder.can_reply("R") is True
    assert builder.can_reply("A") is True
    assert builder.can_reply("B") is False
    assert builder.can_reply("missing") is False


def test_threads_snapshot_is_not_affected_by_later_edits():
    builder = _builder(make_comment("R"))
    snapshot = builder.threads

    builder.append(make_comment("A", parent_comment_id="R"))

    assert snapshot[0].replies == []
    assert [r.id for r in builder.threads[0].replies] == ["A"]
