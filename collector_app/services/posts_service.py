from flask import current_app

from ..errors import Forbidden, InvalidRequest, NotFound
from ..models.entities import CommentWithAuthor
from ..storage.factory import get_store
from . import notifications_service


def get_feed(viewer_id=None, author_id=None):
    """All posts newest first, or only ``author_id``'s, with live counts."""
    return get_store().get_feed_posts(viewer_id=viewer_id, author_id=author_id)


def get_post(post_id, viewer_id=None):
    details = get_store().get_post_with_details(post_id, viewer_id=viewer_id)
    if details is None:
        raise NotFound("Post not found")
    return details


def create_post(author_id, content, images=None):
    content = (content or "").strip()
    if not content:
        raise InvalidRequest("Post content cannot be empty")
    images = [image for image in (images or []) if image]
    store = get_store()
    post = store.create_post({"user_id": author_id, "content": content, "images": images})
    current_app.logger.info(f"User {author_id} created post {post.id}.")
    return store.get_post_with_details(post.id, viewer_id=author_id)


def delete_post(post_id, acting_user_id):
    store = get_store()
    post = store.get_post(post_id)
    if post is None:
        raise NotFound("Post not found")
    if post.user_id != acting_user_id:
        raise Forbidden("You can only delete your own posts")
    store.delete_post(post_id)
    current_app.logger.info(f"User {acting_user_id} deleted post {post_id}.")


def _require_post(post_id):
    post = get_store().get_post(post_id)
    if post is None:
        raise NotFound("Post not found")
    return post


def like_post(post_id, user_id):
    """Returns the post's likes count after the like."""
    store = get_store()
    post = _require_post(post_id)
    liker = store.get_user(user_id)
    if liker is None:
        raise NotFound("User not found")
    store.create_like({"user_id": user_id, "post_id": post_id})
    notifications_service.notify_like(post, liker)
    return store.count_post_likes(post_id)


def unlike_post(post_id, user_id):
    """Returns the post's likes count after the unlike."""
    store = get_store()
    _require_post(post_id)
    if not store.delete_like(user_id, post_id):
        raise InvalidRequest("You have not liked this post")
    return store.count_post_likes(post_id)


def list_comments(post_id):
    _require_post(post_id)
    return get_store().get_post_comments(post_id)


def add_comment(post_id, user_id, content):
    content = (content or "").strip()
    if not content:
        raise InvalidRequest("Comment cannot be empty")
    store = get_store()
    post = _require_post(post_id)
    commenter = store.get_user(user_id)
    if commenter is None:
        raise NotFound("User not found")
    comment = store.create_comment(
        {"user_id": user_id, "post_id": post_id, "content": content}
    )
    notifications_service.notify_comment(post, commenter)
    current_app.logger.debug(f"User {user_id} commented on post {post_id}.")
    return CommentWithAuthor(comment=comment, author=commenter)


def delete_comment(comment_id, acting_user_id):
    store = get_store()
    comment = store.get_comment(comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    if comment.user_id != acting_user_id:
        raise Forbidden("You can only delete your own comments")
    store.delete_comment(comment_id)
