# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Realtime gallery feed.

FeedSynchronizer keeps a live view of the posts collection and, for
every known post, of its comments sub-collection. Observers receive
complete state on every change, never patches:

- post observers get the full post list, rebuilt from each snapshot
  with like counts recomputed and teacher names resolved
- comment observers get the aggregate ``{post_id: [Comment]}`` map

One posts subscription is shared by all post observers. It is opened
for the first observer and released, together with every per-post
comment subscription, when the last one leaves.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from src.domains.school_data.service import (
    COMMENTS,
    POSTS,
    SchoolDataError,
    SchoolDataService,
    models_from_snapshots,
    posts_from_snapshots,
)
from src.infrastructure.events import EventBus, EventTypes, Unsubscribe, get_event_bus
from src.infrastructure.store import DocumentSnapshot, DocumentStore, OrderBy, StoreError, document_path
from src.models.school import Comment, Post

logger = logging.getLogger(__name__)

PostsObserver = Callable[[list[Post]], Awaitable[None]]
CommentsObserver = Callable[[dict[str, list[Comment]]], Awaitable[None]]
PostCommentsObserver = Callable[[list[Comment]], Awaitable[None]]

DEFAULT_TEACHER_NAME = "Teacher"

_POSTS_ORDER = OrderBy("createdAt", descending=True)
_COMMENTS_ORDER = OrderBy("createdAt")


class FeedError(Exception):
    """Exception raised for feed operations."""

    def __init__(
        self,
        message: str,
        code: str = "feed_error",
        original_error: Exception | None = None,
    ):
        self.message = message
        self.code = code
        self.original_error = original_error
        super().__init__(self.message)


def comments_from_snapshots(snapshots: list[DocumentSnapshot]) -> list[Comment]:
    """Build comments, skipping documents that do not fit the Comment shape."""
    return models_from_snapshots(Comment, snapshots)


async def _notify(observer: Callable[[Any], Awaitable[None]], value: Any) -> None:
    try:
        await observer(value)
    except Exception as e:
        logger.error("Feed observer failed: %s", e, exc_info=True)


class FeedSynchronizer:
    """Live posts and comments for the gallery screen.

    Attributes:
        _store: Document store to watch.
        _school_data: Used for teacher lookups and feed writes.
        _posts_observers: Observers of the post list.
        _comments_observers: Observers of the aggregate comment map.
        _posts_unsubscribe: Release handle of the shared posts subscription.
        _comment_subscriptions: Per-post comment subscriptions by post id.
        _tracked_posts: Post ids whose comments are being followed.
        _comments: Aggregate comment map.
        _teacher_names: Resolved teacher names by teacher id.
        _generation: Bumped whenever the posts subscription is opened or
            released; handlers of an older one are ignored.
        _posts_sequence: Number of posts snapshots received, used to drop
            rebuilds overtaken by a newer snapshot.

    Example:
        feed = FeedSynchronizer(store)
        stop = await feed.subscribe_posts(render_posts)
        stop_comments = await feed.watch_comments(render_comments)
        ...
        stop()
    """

    def __init__(
        self,
        store: DocumentStore,
        school_data: SchoolDataService | None = None,
        event_bus: EventBus | None = None,
    ):
        self._store = store
        self._school_data = school_data or SchoolDataService(store)
        self._event_bus = event_bus or get_event_bus()

        self._posts_observers: list[PostsObserver] = []
        self._comments_observers: list[CommentsObserver] = []
        self._posts_unsubscribe: Unsubscribe | None = None
        self._comment_subscriptions: dict[str, Unsubscribe] = {}
        self._standalone_subscriptions: set[Unsubscribe] = set()
        self._tracked_posts: set[str] = set()

        self._posts: list[Post] | None = None
        self._comments: dict[str, list[Comment]] = {}
        self._teacher_names: dict[str, str] = {}

        self._generation = 0
        self._posts_sequence = 0
        self._open_lock = asyncio.Lock()
        self._rebuild_lock = asyncio.Lock()

    @property
    def posts(self) -> list[Post]:
        """Last rebuilt post list (empty before the first snapshot)."""
        return list(self._posts or [])

    @property
    def comments(self) -> dict[str, list[Comment]]:
        """Copy of the aggregate comment map."""
        return {post_id: list(items) for post_id, items in self._comments.items()}

    @property
    def active_comment_subscriptions(self) -> set[str]:
        """Post ids with an open comment subscription."""
        return set(self._comment_subscriptions)

    # =========================================================================
    # Posts
    # =========================================================================

    async def subscribe_posts(self, observer: PostsObserver) -> Unsubscribe:
        """Observe the post list.

        The first observer opens the posts subscription. Later observers
        are handed the current list straight away.

        Returns:
            Callable that removes the observer. Removing the last one
            releases the posts subscription and every comment subscription.

        Raises:
            FeedError: If the posts subscription could not be opened.
        """
        def unsubscribe() -> None:
            if observer in self._posts_observers:
                self._posts_observers.remove(observer)
                if not self._posts_observers:
                    self._release()

        async with self._open_lock:
            self._posts_observers.append(observer)
            if self._posts_unsubscribe is None:
                self._generation += 1
                generation = self._generation
                try:
                    release = await self._store.subscribe(
                        POSTS, self._posts_handler(generation), order_by=_POSTS_ORDER
                    )
                except StoreError as e:
                    self._posts_observers.remove(observer)
                    raise FeedError(
                        "Failed to subscribe to posts",
                        code="subscribe_failed",
                        original_error=e,
                    ) from e
                if generation != self._generation:
                    # Closed while the subscription was opening
                    release()
                    return unsubscribe
                self._posts_unsubscribe = release
                logger.info("Posts subscription opened")
                return unsubscribe

        if self._posts is not None:
            await _notify(observer, self.posts)
        return unsubscribe

    def _posts_handler(self, generation: int) -> Callable[[list[DocumentSnapshot]], Awaitable[None]]:
        async def on_posts(snapshots: list[DocumentSnapshot]) -> None:
            if generation != self._generation:
                return
            self._posts_sequence += 1
            await self._rebuild_posts(snapshots, generation, self._posts_sequence)

        return on_posts

    def _is_latest(self, generation: int, sequence: int) -> bool:
        return generation == self._generation and sequence == self._posts_sequence

    async def _rebuild_posts(
        self,
        snapshots: list[DocumentSnapshot],
        generation: int,
        sequence: int,
    ) -> None:
        """Rebuild the post list from one snapshot.

        A rebuild is dropped as soon as a newer snapshot has arrived or the
        subscription it belongs to has been released, so the list never
        moves back to an older state.
        """
        posts = posts_from_snapshots(snapshots)
        await self._resolve_teacher_names(posts)

        async with self._rebuild_lock:
            if not self._is_latest(generation, sequence):
                logger.debug("Dropping superseded posts snapshot %d", sequence)
                return
            await self._sweep_comment_subscriptions(generation, [post.id for post in posts])
            if not self._is_latest(generation, sequence):
                logger.debug("Dropping superseded posts snapshot %d", sequence)
                return

            for post in posts:
                post.comments = list(self._comments.get(post.id, []))
            self._posts = posts

        logger.debug("Posts rebuilt: %d posts", len(posts))
        for observer in list(self._posts_observers):
            if not self._is_latest(generation, sequence):
                return
            await _notify(observer, self.posts)
        await self._event_bus.publish(
            EventTypes.Feed.POSTS_UPDATED,
            {"post_ids": [post.id for post in posts]},
            source="feed",
        )

    async def _resolve_teacher_names(self, posts: list[Post]) -> None:
        for post in posts:
            if not post.teacher_id:
                post.teacher_name = DEFAULT_TEACHER_NAME
                continue
            if post.teacher_id not in self._teacher_names:
                teacher = await self._school_data.fetch_teacher(post.teacher_id)
                self._teacher_names[post.teacher_id] = (
                    teacher.name if teacher and teacher.name else DEFAULT_TEACHER_NAME
                )
            post.teacher_name = self._teacher_names[post.teacher_id]

    # =========================================================================
    # Comments
    # =========================================================================

    async def watch_comments(self, observer: CommentsObserver) -> Unsubscribe:
        """Observe the aggregate comment map of every known post.

        The observer is handed the current map straight away if posts
        have been loaded.
        """
        self._comments_observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._comments_observers:
                self._comments_observers.remove(observer)

        if self._posts is not None:
            await _notify(observer, self.comments)
        return unsubscribe

    async def _sweep_comment_subscriptions(self, generation: int, post_ids: list[str]) -> None:
        """Open subscriptions for new posts and dispose those of removed posts.

        Must be called with the rebuild lock held.
        """
        current = set(post_ids)

        removed = self._tracked_posts - current
        for post_id in removed:
            self._dispose_comments(post_id)
        if removed:
            logger.debug("Disposed comment subscriptions for %d posts", len(removed))
            await self._publish_comments()

        for post_id in post_ids:
            if generation != self._generation:
                return
            if post_id in self._tracked_posts:
                continue
            self._tracked_posts.add(post_id)
            try:
                unsubscribe = await self._store.subscribe_subcollection(
                    document_path(POSTS, post_id),
                    COMMENTS,
                    self._comments_handler(post_id),
                    order_by=_COMMENTS_ORDER,
                )
            except StoreError as e:
                self._tracked_posts.discard(post_id)
                logger.error("Failed to watch comments of %s: %s", post_id, e, exc_info=True)
                continue

            if post_id in self._tracked_posts:
                self._comment_subscriptions[post_id] = unsubscribe
            else:
                unsubscribe()

    def _comments_handler(self, post_id: str) -> Callable[[list[DocumentSnapshot]], Awaitable[None]]:
        async def on_comments(snapshots: list[DocumentSnapshot]) -> None:
            if post_id not in self._tracked_posts:
                return
            self._comments[post_id] = comments_from_snapshots(snapshots)
            for post in self._posts or []:
                if post.id == post_id:
                    post.comments = list(self._comments[post_id])
            await self._publish_comments()

        return on_comments

    async def _publish_comments(self) -> None:
        for observer in list(self._comments_observers):
            await _notify(observer, self.comments)
        await self._event_bus.publish(
            EventTypes.Feed.COMMENTS_UPDATED,
            {"post_ids": sorted(self._comments)},
            source="feed",
        )

    def _dispose_comments(self, post_id: str) -> None:
        self._tracked_posts.discard(post_id)
        self._comments.pop(post_id, None)
        unsubscribe = self._comment_subscriptions.pop(post_id, None)
        if unsubscribe is not None:
            unsubscribe()

    async def subscribe_comments(self, post_id: str, observer: PostCommentsObserver) -> Unsubscribe:
        """Follow the comments of a single post, oldest first.

        Independent of the shared posts subscription.

        Raises:
            FeedError: If the subscription could not be opened.
        """
        async def on_comments(snapshots: list[DocumentSnapshot]) -> None:
            await _notify(observer, comments_from_snapshots(snapshots))

        try:
            release = await self._store.subscribe_subcollection(
                document_path(POSTS, post_id), COMMENTS, on_comments, order_by=_COMMENTS_ORDER
            )
        except StoreError as e:
            raise FeedError(
                f"Failed to subscribe to comments of {post_id}",
                code="subscribe_failed",
                original_error=e,
            ) from e

        self._standalone_subscriptions.add(release)

        def unsubscribe() -> None:
            if release in self._standalone_subscriptions:
                self._standalone_subscriptions.discard(release)
                release()

        return unsubscribe

    # =========================================================================
    # Writes
    # =========================================================================

    async def toggle_like(self, post_id: str, user_id: str) -> bool:
        """Flip the user's like; the posts subscription delivers the new count.

        Raises:
            FeedError: If the like could not be saved.
        """
        try:
            liked = await self._school_data.toggle_like(post_id, user_id)
        except SchoolDataError as e:
            raise FeedError("Failed to update like", code=e.code, original_error=e) from e

        await self._event_bus.publish(
            EventTypes.Feed.LIKE_TOGGLED,
            {"post_id": post_id, "user_id": user_id, "liked": liked},
            source="feed",
        )
        return liked

    async def add_comment(self, post_id: str, user_id: str, text: str) -> str:
        """Post a comment; the comment subscription delivers it.

        Raises:
            FeedError: If the text is blank or the comment could not be saved.
        """
        text = text.strip()
        if not text:
            raise FeedError("Comment text is empty", code="empty_comment")
        try:
            comment_id = await self._school_data.add_comment(post_id, user_id, text)
        except SchoolDataError as e:
            raise FeedError("Failed to add comment", code=e.code, original_error=e) from e

        await self._event_bus.publish(
            EventTypes.Feed.COMMENT_ADDED,
            {"post_id": post_id, "comment_id": comment_id, "user_id": user_id},
            source="feed",
        )
        return comment_id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _release(self) -> None:
        self._generation += 1
        if self._posts_unsubscribe is not None:
            self._posts_unsubscribe()
            self._posts_unsubscribe = None
            logger.info("Posts subscription released")
        for post_id in list(self._tracked_posts):
            self._dispose_comments(post_id)
        self._posts = None
        self._comments.clear()

    def close(self) -> None:
        """Release every subscription and drop all observers."""
        self._posts_observers.clear()
        self._comments_observers.clear()
        self._release()
        for release in list(self._standalone_subscriptions):
            release()
        self._standalone_subscriptions.clear()
