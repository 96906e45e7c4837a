import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_restful import Api as FlaskRestfulApi
from flask_jwt_extended import JWTManager
from flask_login import LoginManager

from config import DefaultConfig, TestingConfig

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
login_manager = LoginManager()

CONFIGS = {
    "default": DefaultConfig,
    "testing": TestingConfig,
}


def create_app(config_class=None, store_backend=None):
    """Creates and configures the Flask application."""
    app = Flask(__name__)

    app.config.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite:///collector.db")
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    app.config.setdefault("SECRET_KEY", "default-secret-key")
    app.config.setdefault("JWT_SECRET_KEY", "default-jwt-secret-key")
    app.config.setdefault("UPLOAD_FOLDER", "uploads")
    app.config.setdefault("UPLOAD_SUBFOLDERS", ("profile", "banners", "collectibles"))
    app.config.setdefault("ALLOWED_EXTENSIONS", {"png", "jpg", "jpeg"})

    if isinstance(config_class, str):
        if config_class not in CONFIGS:
            raise ValueError(
                f"Unknown configuration '{config_class}'. Expected one of: {', '.join(CONFIGS)}"
            )
        app.config.from_object(CONFIGS[config_class])
    elif config_class is not None:
        app.config.from_object(config_class)
    else:
        app.config.from_object(DefaultConfig)

    app.config["UPLOAD_FOLDER"] = os.path.abspath(app.config["UPLOAD_FOLDER"])

    db.init_app(app)
    migrate.init_app(app, db)
    fr_api = FlaskRestfulApi(app)
    jwt.init_app(app)
    login_manager.init_app(app)

    from .storage.factory import init_store, get_store

    init_store(app, backend=store_backend)

    from .core import views as core_views
    from .core.utils import AuthUser
    from .api.routes import (
        RegisterResource,
        LoginResource,
        LogoutResource,
        CurrentUserResource,
        UserSearchResource,
        RecommendedUsersResource,
        UserResource,
        ProfileImageResource,
        ProfileBannerResource,
        UserCollectiblesResource,
        UserPostsResource,
        FollowResource,
        UserFollowersResource,
        UserFollowingResource,
        CollectibleListResource,
        CollectibleImageUploadResource,
        CollectibleResource,
        TradeListResource,
        TradeResource,
        TradeStatusResource,
        TradeMessagesResource,
        TradeMessagePinResource,
        TradeMessageUnpinResource,
        PostListResource,
        PostResource,
        PostLikeResource,
        CommentListResource,
        CommentResource,
        NotificationListResource,
        NotificationUnreadCountResource,
        NotificationMarkAllReadResource,
        NotificationReadResource,
        NotificationResource,
    )

    app.register_blueprint(core_views.core_bp)

    fr_api.add_resource(RegisterResource, "/api/register")
    fr_api.add_resource(LoginResource, "/api/login")
    fr_api.add_resource(LogoutResource, "/api/logout")
    fr_api.add_resource(CurrentUserResource, "/api/user")

    fr_api.add_resource(UserSearchResource, "/api/users/search")
    fr_api.add_resource(RecommendedUsersResource, "/api/users/recommended")
    fr_api.add_resource(UserResource, "/api/users/<id_or_username>")
    fr_api.add_resource(ProfileImageResource, "/api/users/<int:user_id>/profile-image")
    fr_api.add_resource(ProfileBannerResource, "/api/users/<int:user_id>/banner")
    fr_api.add_resource(
        UserCollectiblesResource, "/api/users/<id_or_username>/collectibles"
    )
    fr_api.add_resource(UserPostsResource, "/api/users/<id_or_username>/posts")
    fr_api.add_resource(FollowResource, "/api/users/<id_or_username>/follow")
    fr_api.add_resource(UserFollowersResource, "/api/users/<id_or_username>/followers")
    fr_api.add_resource(UserFollowingResource, "/api/users/<id_or_username>/following")

    fr_api.add_resource(CollectibleListResource, "/api/collectibles")
    fr_api.add_resource(
        CollectibleImageUploadResource, "/api/collectibles/upload-image"
    )
    fr_api.add_resource(CollectibleResource, "/api/collectibles/<int:collectible_id>")

    fr_api.add_resource(TradeListResource, "/api/trades")
    fr_api.add_resource(TradeResource, "/api/trades/<int:trade_id>")
    fr_api.add_resource(TradeStatusResource, "/api/trades/<int:trade_id>/status")
    fr_api.add_resource(TradeMessagesResource, "/api/trades/<int:trade_id>/messages")
    fr_api.add_resource(
        TradeMessagePinResource,
        "/api/trades/<int:trade_id>/messages/<int:message_id>/pin",
    )
    fr_api.add_resource(
        TradeMessageUnpinResource,
        "/api/trades/<int:trade_id>/messages/<int:message_id>/unpin",
    )

    fr_api.add_resource(PostListResource, "/api/posts")
    fr_api.add_resource(PostResource, "/api/posts/<int:post_id>")
    fr_api.add_resource(PostLikeResource, "/api/posts/<int:post_id>/like")
    fr_api.add_resource(CommentListResource, "/api/posts/<int:post_id>/comments")
    fr_api.add_resource(CommentResource, "/api/comments/<int:comment_id>")

    fr_api.add_resource(NotificationListResource, "/api/notifications")
    fr_api.add_resource(
        NotificationUnreadCountResource, "/api/notifications/unread-count"
    )
    fr_api.add_resource(
        NotificationMarkAllReadResource, "/api/notifications/mark-all-read"
    )
    fr_api.add_resource(
        NotificationReadResource, "/api/notifications/<int:notification_id>/read"
    )
    fr_api.add_resource(
        NotificationResource, "/api/notifications/<int:notification_id>"
    )

    @login_manager.user_loader
    def load_user(user_id):
        user = get_store().get_user(int(user_id))
        return AuthUser(user) if user else None

    upload_folder = app.config["UPLOAD_FOLDER"]
    if not os.path.exists(upload_folder):
        os.makedirs(upload_folder)
        app.logger.info(f"Created folder: {upload_folder}")

    return app
