import os
import uuid
from functools import wraps

from flask import current_app
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_login import UserMixin, current_user
from werkzeug.utils import secure_filename

from ..errors import CollectorError, InvalidRequest, Unauthorized


class AuthUser(UserMixin):
    """Session wrapper around a stored user for Flask-Login."""

    def __init__(self, user):
        self.user = user
        self.id = user.id

    def __repr__(self):
        return f"<AuthUser {self.id}>"


def current_actor_id(optional=False):
    """
    Resolves the acting user's id from a JWT bearer token, falling back to
    the Flask-Login session. Services receive this id explicitly.
    """
    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    if identity is not None:
        return int(identity)
    if current_user and current_user.is_authenticated:
        return int(current_user.get_id())
    if optional:
        return None
    raise Unauthorized("Authentication required")


def handle_collector_errors(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except CollectorError as e:
            if e.status_code >= 500:
                current_app.logger.error(f"Unhandled collector error: {e.message}")
            return e.to_dict(), e.status_code

    return decorated_function


def allowed_file(filename):
    return (
        "." in filename
        and filename.rsplit(".", 1)[0] != ""
        and filename.rsplit(".", 1)[1].lower()
        in current_app.config["ALLOWED_EXTENSIONS"]
    )


def save_uploaded_image(file, subfolder):
    """Stores an uploaded image and returns the URI to persist for it."""
    if subfolder not in current_app.config["UPLOAD_SUBFOLDERS"]:
        raise InvalidRequest(f"Unknown upload type '{subfolder}'")
    if file is None or file.filename == "":
        raise InvalidRequest("No file selected")
    if not allowed_file(file.filename):
        raise InvalidRequest("Allowed image types are png, jpg, jpeg")

    filename = secure_filename(file.filename)
    unique_filename = uuid.uuid4().hex + "_" + filename
    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], subfolder)
    os.makedirs(folder, exist_ok=True)
    file.save(os.path.join(folder, unique_filename))
    current_app.logger.info(f"Saved upload {subfolder}/{unique_filename}")
    return f"/uploads/{subfolder}/{unique_filename}"
