"""Tests for CommentService against in-memory stores."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.auth.permissions import UserRole
from src.comments.exceptions import (
    CommentNotFoundError,
    InvalidReplyTargetError,
    UnsupportedEntityKindError,
)
from src.comments.models import EntityKind, EntityRef
from src.comments.schemas import (
    CommentsFeedFilter,
    CreateCommentRequest,
    ReplyListFilter,
    UpdateCommentRequest,
)
from src.comments.service import CommentService
from src.core.exceptions import ConcurrencyConflictError, PermissionDeniedError
from src.events.models import CommentCreatedEvent
from src.posts.repository import PostNotFoundError
from src.tasks.models import TaskName
from src.users.models import User
from src.users.repository import UserNotFoundError


class TestCreate:
    """Tests for CommentService.create."""

    @pytest.mark.asyncio
    async def test_creates_root_comment(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        response = await comment_service.create(
            caller_for(alice), post_entity, CreateCommentRequest(text="Nice post $AAPL")
        )

        stored = comment_store.stored(response.id)
        assert stored.text == "Nice post $AAPL"
        assert stored.entity == post_entity
        assert stored.replied_comment_id is None
        assert response.author.user_name == "alice"
        assert response.entity_type is EntityKind.POST
        assert response.entity_id == post_entity.id

    @pytest.mark.asyncio
    async def test_schedules_mentions_and_publishes_event(
        self,
        comment_service: CommentService,
        tasks: AsyncMock,
        events: AsyncMock,
        alice,
        caller_for,
        post_entity,
    ):
        response = await comment_service.create(
            caller_for(alice), post_entity, CreateCommentRequest(text="hi $TSLA")
        )

        tasks.enqueue.assert_awaited_once_with(
            TaskName.CREATE_CONTENT_CASHTAG_MENTIONS,
            {
                "content_id": str(response.id),
                "content_type": "comment",
                "user_id": str(alice.id),
                "text": "hi $TSLA",
            },
        )
        events.publish.assert_awaited_once()
        event = events.publish.await_args.args[0]
        assert isinstance(event, CommentCreatedEvent)
        assert event.id == response.id

    @pytest.mark.asyncio
    async def test_reply_to_missing_comment_fails_without_write(
        self, comment_service: CommentService, comment_store, tasks, events, alice, caller_for, post_entity
    ):
        with pytest.raises(CommentNotFoundError):
            await comment_service.create(
                caller_for(alice),
                post_entity,
                CreateCommentRequest(text="reply", replied_comment_id=uuid4()),
            )

        assert comment_store.insert_calls == 0
        assert comment_store.rows == {}
        tasks.enqueue.assert_not_awaited()
        events.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_to_deleted_comment_is_not_found(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        root = comment_store.seed(alice, post_entity)
        await comment_store.delete(root, alice.id)

        with pytest.raises(CommentNotFoundError):
            await comment_service.create(
                caller_for(alice),
                post_entity,
                CreateCommentRequest(text="reply", replied_comment_id=root.id),
            )

    @pytest.mark.asyncio
    async def test_reply_to_reply_is_attached_to_root(
        self, comment_service: CommentService, comment_store, alice, bob, caller_for, post_entity
    ):
        root = comment_store.seed(alice, post_entity)
        reply = comment_store.seed(bob, post_entity, replied_comment_id=root.id, minutes=1)

        response = await comment_service.create(
            caller_for(alice),
            post_entity,
            CreateCommentRequest(text="nested", replied_comment_id=reply.id),
        )

        assert response.replied_comment_id == root.id

    @pytest.mark.asyncio
    async def test_reply_target_on_other_entity(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        other = comment_store.seed(alice, EntityRef(EntityKind.COMMUNITY, "c1"))

        with pytest.raises(InvalidReplyTargetError):
            await comment_service.create(
                caller_for(alice),
                post_entity,
                CreateCommentRequest(text="reply", replied_comment_id=other.id),
            )
        assert comment_store.insert_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_post_fails_without_write(
        self, comment_service: CommentService, comment_store, posts, tasks, alice, caller_for
    ):
        missing = uuid4()

        with pytest.raises(PostNotFoundError):
            await comment_service.create(
                caller_for(alice),
                EntityRef(EntityKind.POST, str(missing)),
                CreateCommentRequest(text="orphan"),
            )

        assert posts.lookups == [missing]
        assert comment_store.insert_calls == 0
        tasks.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_feed_stays_readable_after_rejected_comment(
        self, comment_service: CommentService, alice, caller_for, post_entity
    ):
        with pytest.raises(PostNotFoundError):
            await comment_service.create(
                caller_for(alice),
                EntityRef(EntityKind.POST, str(uuid4())),
                CreateCommentRequest(text="orphan"),
            )
        await comment_service.create(
            caller_for(alice), post_entity, CreateCommentRequest(text="kept")
        )

        feed = await comment_service.get_feed(CommentsFeedFilter(max_result_count=10))

        assert [item.text for item in feed] == ["kept"]

    @pytest.mark.asyncio
    async def test_community_comment_skips_post_lookup(
        self, comment_service: CommentService, posts, alice, caller_for
    ):
        response = await comment_service.create(
            caller_for(alice),
            EntityRef(EntityKind.COMMUNITY, "dividends"),
            CreateCommentRequest(text="hello"),
        )

        assert response.entity_type is EntityKind.COMMUNITY
        assert posts.lookups == []

    @pytest.mark.asyncio
    async def test_unknown_caller(self, comment_service: CommentService, caller_for, post_entity):
        ghost = User(id=uuid4(), user_name="ghost")
        with pytest.raises(UserNotFoundError):
            await comment_service.create(
                caller_for(ghost), post_entity, CreateCommentRequest(text="boo")
            )

    @pytest.mark.asyncio
    async def test_side_effect_failure_does_not_fail_create(
        self,
        comment_service: CommentService,
        comment_store,
        tasks: AsyncMock,
        events: AsyncMock,
        alice,
        caller_for,
        post_entity,
    ):
        tasks.enqueue.side_effect = ConnectionError("redis down")
        events.publish.side_effect = ConnectionError("redis down")

        response = await comment_service.create(
            caller_for(alice), post_entity, CreateCommentRequest(text="still saved")
        )

        assert comment_store.stored(response.id).text == "still saved"
        # Retried up to the dispatcher's max_attempts
        assert tasks.enqueue.await_count == 2
        assert events.publish.await_count == 2


class TestGetList:
    """Tests for CommentService.get_list."""

    @pytest.mark.asyncio
    async def test_threads_comments_and_drops_orphans(
        self, comment_service: CommentService, comment_store, alice, bob, post_entity
    ):
        a = comment_store.seed(alice, post_entity, text="A", minutes=1)
        b = comment_store.seed(bob, post_entity, text="B", replied_comment_id=a.id, minutes=2)
        c = comment_store.seed(bob, post_entity, text="C", replied_comment_id=uuid4(), minutes=3)

        result = await comment_service.get_list(post_entity)

        assert [item.id for item in result] == [a.id]
        assert [reply.id for reply in result[0].replies] == [b.id]
        all_ids = {item.id for item in result} | {
            reply.id for item in result for reply in item.replies
        }
        assert c.id not in all_ids

    @pytest.mark.asyncio
    async def test_other_entities_are_excluded(
        self, comment_service: CommentService, comment_store, alice, post_entity
    ):
        comment_store.seed(alice, EntityRef(EntityKind.POST, str(uuid4())))
        mine = comment_store.seed(alice, post_entity)

        result = await comment_service.get_list(post_entity)

        assert [item.id for item in result] == [mine.id]

    @pytest.mark.asyncio
    async def test_authors_are_resolved_once_each(
        self,
        comment_service: CommentService,
        comment_store,
        profile_pictures,
        users,
        alice,
        bob,
        post_entity,
    ):
        carol = users.add("carol")
        root = comment_store.seed(alice, post_entity, minutes=0)
        for minute, author in enumerate([bob, alice, bob, carol, alice], start=1):
            comment_store.seed(author, post_entity, replied_comment_id=root.id, minutes=minute)
        comment_store.seed(bob, post_entity, minutes=10)

        result = await comment_service.get_list(post_entity)

        assert sorted(profile_pictures.calls) == sorted([alice.id, bob.id, carol.id])
        # enrichment_concurrency=2 in the fixture
        assert profile_pictures.max_in_flight <= 2
        assert result[0].author.profile_image_data_url == f"data:image/png;base64,{alice.id.hex}"
        assert [r.author.user_name for r in result[0].replies] == [
            "bob",
            "alice",
            "bob",
            "carol",
            "alice",
        ]

    @pytest.mark.asyncio
    async def test_profile_picture_failure_degrades_to_empty(
        self, comment_service: CommentService, comment_store, profile_pictures, alice, bob, post_entity
    ):
        profile_pictures.failing.add(bob.id)
        root = comment_store.seed(bob, post_entity)
        comment_store.seed(alice, post_entity, replied_comment_id=root.id, minutes=1)

        result = await comment_service.get_list(post_entity)

        assert result[0].author.profile_image_data_url == ""
        assert result[0].replies[0].author.profile_image_data_url.startswith("data:")

    @pytest.mark.asyncio
    async def test_unexpected_picture_error_degrades_to_empty(
        self, comment_service: CommentService, comment_store, profile_pictures, alice, post_entity
    ):
        profile_pictures.get_profile_picture_data_url = AsyncMock(
            side_effect=RuntimeError("resolver bug")
        )
        comment_store.seed(alice, post_entity)

        result = await comment_service.get_list(post_entity)

        assert result[0].author.user_name == "alice"
        assert result[0].author.profile_image_data_url == ""

    @pytest.mark.asyncio
    async def test_deleted_comments_are_hidden(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        keep = comment_store.seed(alice, post_entity)
        gone = comment_store.seed(alice, post_entity, minutes=1)
        await comment_service.delete(caller_for(alice), gone.id)

        result = await comment_service.get_list(post_entity)

        assert [item.id for item in result] == [keep.id]


class TestGetReplies:
    """Tests for CommentService.get_replies."""

    @pytest.mark.asyncio
    async def test_filters(self, comment_service: CommentService, comment_store, alice, bob, post_entity):
        root = comment_store.seed(alice, post_entity)
        comment_store.seed(alice, post_entity, "I agree", replied_comment_id=root.id, minutes=1)
        match = comment_store.seed(bob, post_entity, "Strongly AGREE", replied_comment_id=root.id, minutes=2)
        comment_store.seed(bob, post_entity, "nope", replied_comment_id=root.id, minutes=3)

        result = await comment_service.get_replies(
            root.id, ReplyListFilter(filter="agree", author_username="BOB")
        )

        assert [r.id for r in result] == [match.id]
        assert result[0].author.user_name == "bob"

    @pytest.mark.asyncio
    async def test_unknown_author_matches_nothing(
        self, comment_service: CommentService, comment_store, alice, post_entity
    ):
        root = comment_store.seed(alice, post_entity)
        comment_store.seed(alice, post_entity, replied_comment_id=root.id, minutes=1)

        result = await comment_service.get_replies(
            root.id, ReplyListFilter(author_username="nobody")
        )

        assert result == []


class TestGetFeed:
    """Tests for CommentService.get_feed."""

    @pytest.mark.asyncio
    async def test_stitches_post_details(
        self, comment_service: CommentService, comment_store, posts, alice, bob
    ):
        post = posts.add("market-outlook", community="bulls")
        entity = EntityRef(EntityKind.POST, str(post.id))
        root = comment_store.seed(alice, entity, "first")
        reply = comment_store.seed(bob, entity, "second", replied_comment_id=root.id, minutes=1)

        result = await comment_service.get_feed(CommentsFeedFilter())

        assert len(result) == 1
        item = result[0]
        assert item.id == root.id
        assert [r.id for r in item.replies] == [reply.id]
        assert item.post_slug == "market-outlook"
        assert item.post_title == "Market Outlook"
        assert item.post_creation_date == post.creation_time
        assert item.post_community_name == "bulls"

    @pytest.mark.asyncio
    async def test_each_post_fetched_once(
        self, comment_service: CommentService, comment_store, posts, alice
    ):
        post = posts.add("busy-post")
        entity = EntityRef(EntityKind.POST, str(post.id))
        for minute in range(3):
            comment_store.seed(alice, entity, minutes=minute)

        result = await comment_service.get_feed(CommentsFeedFilter())

        assert len(result) == 3
        assert posts.lookups == [post.id]

    @pytest.mark.asyncio
    async def test_newest_first_and_paged(
        self, comment_service: CommentService, comment_store, posts, alice
    ):
        entity = EntityRef(EntityKind.POST, str(posts.add("p").id))
        seeded = [comment_store.seed(alice, entity, minutes=m) for m in range(5)]

        result = await comment_service.get_feed(
            CommentsFeedFilter(skip_count=1, max_result_count=2)
        )

        assert [item.id for item in result] == [seeded[3].id, seeded[2].id]

    @pytest.mark.asyncio
    async def test_missing_post_propagates(
        self, comment_service: CommentService, comment_store, alice
    ):
        comment_store.seed(alice, EntityRef(EntityKind.POST, str(uuid4())))

        with pytest.raises(PostNotFoundError):
            await comment_service.get_feed(CommentsFeedFilter())

    @pytest.mark.asyncio
    async def test_non_post_kind_is_rejected(
        self, comment_service: CommentService, comment_store, alice
    ):
        community_comment = comment_store.seed(alice, EntityRef(EntityKind.COMMUNITY, "c1"))
        comment_store.list_for_feed = AsyncMock(
            return_value=await comment_store.list_with_authors(community_comment.entity)
        )

        with pytest.raises(UnsupportedEntityKindError):
            await comment_service.get_feed(CommentsFeedFilter())


class TestUpdate:
    """Tests for CommentService.update."""

    @pytest.mark.asyncio
    async def test_author_can_update(
        self, comment_service: CommentService, comment_store, tasks, alice, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity, "before")

        response = await comment_service.update(
            caller_for(alice), comment.id, UpdateCommentRequest(text="after $MSFT")
        )

        stored = comment_store.stored(comment.id)
        assert stored.text == "after $MSFT"
        assert stored.last_modification_time is not None
        assert response.concurrency_stamp == stored.concurrency_stamp
        assert response.concurrency_stamp != comment.concurrency_stamp
        tasks.enqueue.assert_awaited_once()
        assert tasks.enqueue.await_args.args[0] == TaskName.UPDATE_CONTENT_CASHTAG_MENTIONS
        assert tasks.enqueue.await_args.args[1]["text"] == "after $MSFT"

    @pytest.mark.asyncio
    async def test_non_author_is_forbidden_and_nothing_changes(
        self, comment_service: CommentService, comment_store, tasks, alice, bob, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity, "before")

        with pytest.raises(PermissionDeniedError):
            await comment_service.update(
                caller_for(bob), comment.id, UpdateCommentRequest(text="hijack")
            )

        assert comment_store.stored(comment.id).text == "before"
        assert comment_store.update_calls == 0
        tasks.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_cannot_edit_others(
        self, comment_service: CommentService, comment_store, alice, bob, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity)

        with pytest.raises(PermissionDeniedError):
            await comment_service.update(
                caller_for(bob, UserRole.ADMIN), comment.id, UpdateCommentRequest(text="x")
            )

    @pytest.mark.asyncio
    async def test_stale_stamp_conflicts(
        self, comment_service: CommentService, comment_store, tasks, alice, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity, "before")

        with pytest.raises(ConcurrencyConflictError):
            await comment_service.update(
                caller_for(alice),
                comment.id,
                UpdateCommentRequest(text="after", concurrency_stamp="stale"),
            )

        assert comment_store.stored(comment.id).text == "before"
        tasks.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_matching_stamp_succeeds(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity, "before")

        await comment_service.update(
            caller_for(alice),
            comment.id,
            UpdateCommentRequest(text="after", concurrency_stamp=comment.concurrency_stamp),
        )

        assert comment_store.stored(comment.id).text == "after"

    @pytest.mark.asyncio
    async def test_second_writer_with_old_stamp_conflicts(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity, "v1")
        seen_stamp = comment.concurrency_stamp

        await comment_service.update(
            caller_for(alice), comment.id, UpdateCommentRequest(text="v2", concurrency_stamp=seen_stamp)
        )
        with pytest.raises(ConcurrencyConflictError):
            await comment_service.update(
                caller_for(alice),
                comment.id,
                UpdateCommentRequest(text="v3", concurrency_stamp=seen_stamp),
            )

        assert comment_store.stored(comment.id).text == "v2"

    @pytest.mark.asyncio
    async def test_missing_comment(self, comment_service: CommentService, alice, caller_for):
        with pytest.raises(CommentNotFoundError):
            await comment_service.update(
                caller_for(alice), uuid4(), UpdateCommentRequest(text="x")
            )


class TestDelete:
    """Tests for CommentService.delete."""

    @pytest.mark.asyncio
    async def test_author_can_delete(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity)

        assert await comment_service.delete(caller_for(alice), comment.id) is True

        assert comment_store.stored(comment.id).is_deleted is True
        with pytest.raises(CommentNotFoundError):
            await comment_store.get(comment.id)

    @pytest.mark.asyncio
    async def test_admin_can_delete_others(
        self, comment_service: CommentService, comment_store, alice, bob, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity)

        assert await comment_service.delete(caller_for(bob, UserRole.ADMIN), comment.id)

        stored = comment_store.stored(comment.id)
        assert stored.is_deleted is True
        assert stored.deleter_id == bob.id

    @pytest.mark.asyncio
    async def test_non_author_non_admin_is_forbidden(
        self, comment_service: CommentService, comment_store, alice, bob, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity)

        with pytest.raises(PermissionDeniedError):
            await comment_service.delete(caller_for(bob), comment.id)

        assert comment_store.stored(comment.id).is_deleted is False

    @pytest.mark.asyncio
    async def test_deleting_twice_is_not_found(
        self, comment_service: CommentService, comment_store, alice, caller_for, post_entity
    ):
        comment = comment_store.seed(alice, post_entity)
        await comment_service.delete(caller_for(alice), comment.id)

        with pytest.raises(CommentNotFoundError):
            await comment_service.delete(caller_for(alice), comment.id)
