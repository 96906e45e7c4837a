import os
import sys
from dotenv import load_dotenv

load_dotenv()

project_root = os.path.abspath(os.path.dirname(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import alembic.command
import alembic.config
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from collector_app import create_app, db, migrate
from collector_app.errors import CollectorError
from collector_app.services import (
    collectibles_service,
    posts_service,
    users_service,
)
from collector_app.storage.factory import get_store

app = create_app(os.getenv("FLASK_CONFIG") or "default")

DEMO_USERS = [
    {
        "username": "johndoe",
        "password": "password123",
        "email": "john@example.com",
        "display_name": "John Doe",
        "bio": "PopMart collector since 2020",
        "profile_image": "https://images.unsplash.com/photo-1517841905240-472988babdf9",
    },
    {
        "username": "janedoe",
        "password": "password123",
        "email": "jane@example.com",
        "display_name": "Jane Doe",
        "bio": "Collecting cute figures is my passion",
        "profile_image": "https://images.unsplash.com/photo-1534528741775-53994a69daeb",
    },
]

DEMO_COLLECTIBLES = {
    "johndoe": [
        {
            "name": "Dimoo Candy Series",
            "series": "Dimoo",
            "variant": "Strawberry Dream",
            "rarity": "rare",
            "image": "https://pixabay.com/get/ge2e2feeb6d154376f5b096a59f55815948fa2d5589d58f822ce7e9532c6d1a6d78fddd2f01baf36a15d4b3f923041d48291cc569a5eb9a9ec23bf426bb9b6240_1280.jpg",
            "description": "A cute pink Dimoo with strawberry theme",
            "for_trade": True,
        },
        {
            "name": "Skullpanda Space",
            "series": "Skullpanda",
            "variant": "Cosmic Explorer",
            "rarity": "common",
            "image": "https://images.unsplash.com/photo-1598541264502-84dc6aa2fb87",
            "description": "Skullpanda with space theme",
            "for_trade": True,
        },
    ],
    "janedoe": [
        {
            "name": "Molly Ocean Series",
            "series": "Molly",
            "variant": "Coral Guardian",
            "rarity": "ultra-rare",
            "image": "https://images.unsplash.com/photo-1581557991964-125469da3b8a",
            "description": "Molly with ocean theme",
            "for_trade": True,
        },
    ],
}

DEMO_POSTS = {
    "johndoe": [
        {
            "content": "Just added the new Molly Ocean Series to my collection! So excited to have completed the set!",
            "images": ["https://images.unsplash.com/photo-1581557991964-125469da3b8a"],
        },
    ],
    "janedoe": [
        {
            "content": "Went to the PopMart event today and scored this limited edition Dimoo! Anyone want to trade?",
            "images": [],
        },
    ],
}


@app.cli.command("seed-demo")
def seed_demo_cli():
    """CLI command to seed demo users, collectibles and posts."""
    with app.app_context():
        store = get_store()
        users_added_count = 0
        users_skipped_count = 0
        for user_data in DEMO_USERS:
            user_data = dict(user_data)
            username = user_data.pop("username")
            user = store.get_user_by_username(username)
            if user:
                users_skipped_count += 1
                continue
            try:
                user = users_service.register_user(
                    username,
                    user_data.pop("email"),
                    user_data.pop("password"),
                    **user_data,
                )
            except CollectorError as e:
                print(f"Error adding demo user {username}: {e.message}")
                continue
            users_added_count += 1
            print(f"Adding demo user: {username}")

            for collectible_data in DEMO_COLLECTIBLES.get(username, []):
                collectibles_service.add_collectible(user.id, collectible_data)
            for post_data in DEMO_POSTS.get(username, []):
                posts_service.create_post(
                    user.id, post_data["content"], post_data["images"]
                )

        if users_added_count > 0:
            print(f"Successfully added {users_added_count} demo users.")
        if users_skipped_count > 0:
            print(f"Skipped {users_skipped_count} demo users (already exist).")
        print("Demo seeding process complete.")


def apply_migrations(app_instance):
    """Applies Alembic migrations at startup."""
    with app_instance.app_context():
        try:
            app_instance.logger.info("Configuring Alembic for database migrations...")
            alembic_cfg = alembic.config.Config("migrations/alembic.ini")
            alembic_cfg.set_main_option("script_location", migrate.directory)
            alembic_cfg.set_main_option(
                "sqlalchemy.url", app_instance.config["SQLALCHEMY_DATABASE_URI"]
            )

            app_instance.logger.info("Attempting to apply database migrations...")
            alembic.command.upgrade(alembic_cfg, "head")
            app_instance.logger.info(
                "Database migrations applied successfully (or already up to date)."
            )
        except Exception as e:
            app_instance.logger.error(f"Error applying database migrations: {e}")


def check_trades_table_exists(app_instance):
    """Checks for the existence of the 'trades' table after migrations."""
    with app_instance.app_context():
        with db.engine.connect() as connection:
            try:
                connection.execute(text("SELECT 1 FROM trades LIMIT 1"))
                app_instance.logger.info(
                    "Table 'trades' confirmed to exist in the database."
                )
            except OperationalError as e:
                app_instance.logger.critical(
                    f"CRITICAL: Table 'trades' does not exist after migrations. Error: {e}"
                )
                raise RuntimeError(
                    "Application cannot start: 'trades' table is missing after migrations."
                )


if __name__ == "__main__":
    if not app.config.get("TESTING", False):
        if app.config.get("STORE_BACKEND") == "sql":
            if not app.debug or os.environ.get("WERKZEUG_RUN_MAIN") == "true":
                apply_migrations(app)
                check_trades_table_exists(app)
        else:
            app.logger.info("Skipping migrations (in-memory store backend).")

    app_port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=app_port, debug=app.debug)
