from flask import request
from flask_jwt_extended import create_access_token
from flask_login import login_user, logout_user
from flask_restful import Resource, inputs, reqparse

from ..core.utils import (
    AuthUser,
    current_actor_id,
    handle_collector_errors,
    save_uploaded_image,
)
from ..errors import Forbidden, InvalidRequest, Unauthorized
from ..models.entities import ChatMessageWithSender, Rarity, TradeStatus
from ..services import (
    chat_service,
    collectibles_service,
    notifications_service,
    posts_service,
    recommendations_service,
    social_service,
    trades_service,
    users_service,
)


class CollectorResource(Resource):
    method_decorators = [handle_collector_errors]


def _dicts(records):
    return [record.to_dict() for record in records]


def _session_payload(user):
    login_user(AuthUser(user))
    return {
        "user": user.to_self_dict(),
        "access_token": create_access_token(identity=str(user.id)),
    }


# --- auth ---


class RegisterResource(CollectorResource):
    def post(self):
        parser = reqparse.RequestParser()
        parser.add_argument("username", required=True, location="json", help="Username cannot be blank")
        parser.add_argument("email", required=True, location="json", help="Email cannot be blank")
        parser.add_argument("password", required=True, location="json", help="Password cannot be blank")
        parser.add_argument("displayName", dest="display_name", location="json")
        parser.add_argument("bio", location="json")
        data = parser.parse_args()

        user = users_service.register_user(
            data["username"],
            data["email"],
            data["password"],
            display_name=data["display_name"],
            bio=data["bio"],
        )
        return _session_payload(user), 201


class LoginResource(CollectorResource):
    def post(self):
        parser = reqparse.RequestParser()
        parser.add_argument("username", required=True, location="json", help="Username cannot be blank")
        parser.add_argument("password", required=True, location="json", help="Password cannot be blank")
        data = parser.parse_args()

        user = users_service.authenticate_user(data["username"], data["password"])
        if user is None:
            raise Unauthorized("Invalid username or password")
        return _session_payload(user), 200


class LogoutResource(CollectorResource):
    def post(self):
        logout_user()
        return {"message": "Logged out"}, 200


class CurrentUserResource(CollectorResource):
    def get(self):
        user = users_service.get_user(current_actor_id())
        return user.to_self_dict(), 200


# --- users ---


class UserSearchResource(CollectorResource):
    def get(self):
        users = users_service.search_users(request.args.get("q", ""))
        return [u.to_public_dict() for u in users], 200


class RecommendedUsersResource(CollectorResource):
    def get(self):
        users = recommendations_service.suggest_users_to_follow(current_actor_id())
        return [u.to_public_dict() for u in users], 200


class UserResource(CollectorResource):
    def get(self, id_or_username):
        return users_service.resolve_user(id_or_username).to_public_dict(), 200

    def patch(self, id_or_username):
        actor_id = current_actor_id()
        user = users_service.resolve_user(id_or_username)

        parser = reqparse.RequestParser()
        parser.add_argument("displayName", dest="display_name", location="json", store_missing=False)
        parser.add_argument("bio", location="json", store_missing=False)
        parser.add_argument("profileImage", dest="profile_image", location="json", store_missing=False)
        parser.add_argument("profileBanner", dest="profile_banner", location="json", store_missing=False)
        data = parser.parse_args()

        updated = users_service.update_profile(user.id, actor_id, dict(data))
        return updated.to_public_dict(), 200


class UserImageUploadResource(CollectorResource):
    """Uploads a profile image or banner and stores its URI on the profile."""

    FIELDS = {"profile": "profile_image", "banners": "profile_banner"}

    def post(self, user_id, kind):
        actor_id = current_actor_id()
        if user_id != actor_id:
            raise Forbidden("You can only update your own profile")
        uri = save_uploaded_image(request.files.get("image"), kind)
        user = users_service.update_profile(
            user_id, actor_id, {self.FIELDS[kind]: uri}
        )
        return user.to_public_dict(), 200


class ProfileImageResource(UserImageUploadResource):
    def post(self, user_id):
        return super().post(user_id, "profile")


class ProfileBannerResource(UserImageUploadResource):
    def post(self, user_id):
        return super().post(user_id, "banners")


class UserCollectiblesResource(CollectorResource):
    def get(self, id_or_username):
        user = users_service.resolve_user(id_or_username)
        return _dicts(collectibles_service.list_user_collectibles(user.id)), 200


class UserPostsResource(CollectorResource):
    def get(self, id_or_username):
        user = users_service.resolve_user(id_or_username)
        posts = posts_service.get_feed(
            viewer_id=current_actor_id(optional=True), author_id=user.id
        )
        return _dicts(posts), 200


class FollowResource(CollectorResource):
    def get(self, id_or_username):
        target = users_service.resolve_user(id_or_username)
        return {"following": social_service.is_following(current_actor_id(), target.id)}, 200

    def post(self, id_or_username):
        actor_id = current_actor_id()
        target = users_service.resolve_user(id_or_username)
        social_service.follow_user(actor_id, target.id)
        return {"message": f"You are now following {target.username}"}, 201

    def delete(self, id_or_username):
        actor_id = current_actor_id()
        target = users_service.resolve_user(id_or_username)
        social_service.unfollow_user(actor_id, target.id)
        return {"message": f"You have unfollowed {target.username}"}, 200


class UserFollowersResource(CollectorResource):
    def get(self, id_or_username):
        user = users_service.resolve_user(id_or_username)
        return [u.to_summary_dict() for u in social_service.list_followers(user.id)], 200


class UserFollowingResource(CollectorResource):
    def get(self, id_or_username):
        user = users_service.resolve_user(id_or_username)
        return [u.to_summary_dict() for u in social_service.list_following(user.id)], 200


# --- collectibles ---


def _collectible_parser(partial):
    extra = {"store_missing": False} if partial else {"required": True}
    parser = reqparse.RequestParser()
    parser.add_argument("name", location="json", help="Name cannot be blank", **extra)
    parser.add_argument("series", location="json", help="Series cannot be blank", **extra)
    parser.add_argument("variant", location="json", help="Variant cannot be blank", **extra)
    parser.add_argument(
        "rarity",
        location="json",
        choices=Rarity.values(),
        help="Rarity must be one of: " + ", ".join(Rarity.values()),
        **extra,
    )
    parser.add_argument("image", location="json", help="Image cannot be blank", **extra)
    parser.add_argument("description", location="json", store_missing=False)
    parser.add_argument(
        "forTrade",
        dest="for_trade",
        type=inputs.boolean,
        location="json",
        nullable=False,
        help="forTrade must be true or false",
        store_missing=False,
    )
    return parser


class CollectibleListResource(CollectorResource):
    def get(self):
        query = request.args.get("q")
        if query:
            return _dicts(collectibles_service.search_collectibles(query)), 200
        if request.args.get("forTrade") == "true":
            return _dicts(collectibles_service.list_collectibles_for_trade()), 200
        user_id = request.args.get("userId")
        if user_id:
            if not user_id.isdigit():
                raise InvalidRequest("Invalid user ID")
            collectibles = collectibles_service.list_user_collectibles(
                int(user_id), sort=request.args.get("sort")
            )
            return _dicts(collectibles), 200
        return [], 200

    def post(self):
        actor_id = current_actor_id()
        data = _collectible_parser(partial=False).parse_args()
        collectible = collectibles_service.add_collectible(actor_id, dict(data))
        return collectible.to_dict(), 201


class CollectibleImageUploadResource(CollectorResource):
    def post(self):
        current_actor_id()
        uri = save_uploaded_image(request.files.get("image"), "collectibles")
        return {"imagePath": uri}, 201


class CollectibleResource(CollectorResource):
    def get(self, collectible_id):
        return collectibles_service.get_collectible(collectible_id).to_dict(), 200

    def patch(self, collectible_id):
        actor_id = current_actor_id()
        data = _collectible_parser(partial=True).parse_args()
        collectible = collectibles_service.update_collectible(
            collectible_id, actor_id, dict(data)
        )
        return collectible.to_dict(), 200

    def delete(self, collectible_id):
        collectibles_service.remove_collectible(collectible_id, current_actor_id())
        return {"message": "Collectible deleted"}, 200


# --- trades ---


class TradeListResource(CollectorResource):
    def get(self):
        return _dicts(trades_service.list_trades_for_user(current_actor_id())), 200

    def post(self):
        actor_id = current_actor_id()
        parser = reqparse.RequestParser()
        parser.add_argument("receiverId", dest="receiver_id", type=int, required=True, location="json", help="Receiver is required")
        parser.add_argument("proposerCollectibleId", dest="proposer_collectible_id", type=int, required=True, location="json", help="Offered collectible is required")
        parser.add_argument("receiverCollectibleId", dest="receiver_collectible_id", type=int, required=True, location="json", help="Requested collectible is required")
        parser.add_argument("message", location="json")
        data = parser.parse_args()

        details = trades_service.propose_trade(
            actor_id,
            data["proposer_collectible_id"],
            data["receiver_id"],
            data["receiver_collectible_id"],
            message=data["message"],
        )
        return details.to_dict(), 201


class TradeResource(CollectorResource):
    def get(self, trade_id):
        details = trades_service.get_trade_for_user(trade_id, current_actor_id())
        return details.to_dict(), 200


class TradeStatusResource(CollectorResource):
    def patch(self, trade_id):
        actor_id = current_actor_id()
        statuses = [s.value for s in TradeStatus if s != TradeStatus.PENDING]
        parser = reqparse.RequestParser()
        parser.add_argument(
            "status",
            required=True,
            location="json",
            choices=statuses,
            help="Status must be one of: " + ", ".join(statuses),
        )
        data = parser.parse_args()
        details = trades_service.update_trade_status(trade_id, actor_id, data["status"])
        return details.to_dict(), 200


class TradeMessagesResource(CollectorResource):
    def get(self, trade_id):
        messages = chat_service.list_trade_messages(trade_id, current_actor_id())
        return _dicts(messages), 200

    def post(self, trade_id):
        actor_id = current_actor_id()
        parser = reqparse.RequestParser()
        parser.add_argument("message", required=True, location="json", help="Message cannot be blank")
        data = parser.parse_args()
        chat_message = chat_service.send_trade_message(trade_id, actor_id, data["message"])
        sender = users_service.get_user(actor_id)
        return ChatMessageWithSender(message=chat_message, sender=sender).to_dict(), 201


class TradeMessagePinResource(CollectorResource):
    def patch(self, trade_id, message_id):
        chat_message = chat_service.pin_trade_message(trade_id, message_id, current_actor_id())
        return chat_message.to_dict(), 200


class TradeMessageUnpinResource(CollectorResource):
    def patch(self, trade_id, message_id):
        chat_message = chat_service.unpin_trade_message(trade_id, message_id, current_actor_id())
        return chat_message.to_dict(), 200


# --- posts ---


class PostListResource(CollectorResource):
    def get(self):
        author_id = request.args.get("userId")
        if author_id is not None and not author_id.isdigit():
            raise InvalidRequest("Invalid user ID")
        posts = posts_service.get_feed(
            viewer_id=current_actor_id(optional=True),
            author_id=int(author_id) if author_id else None,
        )
        return _dicts(posts), 200

    def post(self):
        actor_id = current_actor_id()
        parser = reqparse.RequestParser()
        parser.add_argument("content", required=True, location="json", help="Content cannot be blank")
        parser.add_argument("images", action="append", location="json", default=[])
        data = parser.parse_args()
        details = posts_service.create_post(actor_id, data["content"], data["images"])
        return details.to_dict(), 201


class PostResource(CollectorResource):
    def get(self, post_id):
        details = posts_service.get_post(post_id, viewer_id=current_actor_id(optional=True))
        return details.to_dict(), 200

    def delete(self, post_id):
        posts_service.delete_post(post_id, current_actor_id())
        return {"message": "Post deleted"}, 200


class PostLikeResource(CollectorResource):
    def post(self, post_id):
        likes_count = posts_service.like_post(post_id, current_actor_id())
        return {"message": "Post liked successfully", "likesCount": likes_count}, 201

    def delete(self, post_id):
        likes_count = posts_service.unlike_post(post_id, current_actor_id())
        return {"message": "Post unliked successfully", "likesCount": likes_count}, 200


class CommentListResource(CollectorResource):
    def get(self, post_id):
        return _dicts(posts_service.list_comments(post_id)), 200

    def post(self, post_id):
        actor_id = current_actor_id()
        parser = reqparse.RequestParser()
        parser.add_argument("content", required=True, location="json", help="Comment content cannot be blank")
        data = parser.parse_args()
        comment = posts_service.add_comment(post_id, actor_id, data["content"])
        return comment.to_dict(), 201


class CommentResource(CollectorResource):
    def delete(self, comment_id):
        posts_service.delete_comment(comment_id, current_actor_id())
        return {"message": "Comment deleted"}, 200


# --- notifications ---


class NotificationListResource(CollectorResource):
    def get(self):
        actor_id = current_actor_id()
        parser = reqparse.RequestParser()
        parser.add_argument("limit", type=inputs.natural, location="args")
        parser.add_argument("includeRead", dest="include_read", type=inputs.boolean, location="args", default=False)
        args = parser.parse_args()
        notifications = notifications_service.list_notifications(
            actor_id, limit=args["limit"], include_read=args["include_read"]
        )
        return _dicts(notifications), 200


class NotificationUnreadCountResource(CollectorResource):
    def get(self):
        return {"count": notifications_service.unread_count(current_actor_id())}, 200


class NotificationReadResource(CollectorResource):
    def post(self, notification_id):
        notification = notifications_service.mark_read(notification_id, current_actor_id())
        return notification.to_dict(), 200


class NotificationMarkAllReadResource(CollectorResource):
    def post(self):
        changed = notifications_service.mark_all_read(current_actor_id())
        return {"message": "All notifications marked as read", "updated": changed}, 200


class NotificationResource(CollectorResource):
    def delete(self, notification_id):
        notifications_service.delete_notification(notification_id, current_actor_id())
        return {"message": "Notification deleted"}, 200

