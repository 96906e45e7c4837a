from collections import defaultdict

from flask import current_app

from ..storage.factory import get_store


def suggest_users_to_follow(user_id, limit=None):
    """
    Suggest users who collect the same series as the current user.

    Candidates are every other user the current user does not follow yet,
    ranked by how many of their collectibles belong to a series the current
    user owns, highest first, ties broken by lowest user id. A user without
    collectibles therefore gets the first other users by id.
    """
    if limit is None:
        limit = current_app.config.get("RECOMMENDATIONS_LIMIT", 5)
    store = get_store()
    if store.get_user(user_id) is None:
        return []

    followed_ids = {u.id for u in store.get_user_following(user_id)}
    owned_series = {c.series for c in store.get_user_collectibles(user_id)}

    shared_counts = defaultdict(int)
    if owned_series:
        shared_counts.update(
            store.count_collectibles_in_series(owned_series, exclude_user_id=user_id)
        )

    candidates = [
        user
        for user in store.get_all_users()
        if user.id != user_id and user.id not in followed_ids
    ]
    ranked = sorted(candidates, key=lambda u: (-shared_counts[u.id], u.id))
    current_app.logger.debug(
        f"Recommendations for user {user_id}: {[u.id for u in ranked[:limit]]}"
    )
    return ranked[:limit]
