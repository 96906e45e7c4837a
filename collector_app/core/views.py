from flask import Blueprint, current_app, send_from_directory

core_bp = Blueprint("core", __name__)


@core_bp.route("/uploads/<subfolder>/<filename>")
def uploaded_file(subfolder, filename):
    return send_from_directory(
        current_app.config["UPLOAD_FOLDER"], f"{subfolder}/{filename}"
    )


@core_bp.route("/health")
def health():
    return {"status": "ok"}
