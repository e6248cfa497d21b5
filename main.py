import logging
from datetime import datetime
from io import BytesIO

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask_cors import CORS
from pymongo.errors import PyMongoError

import database
from accounts import (
    authenticate_admin,
    authenticate_user,
    register_user,
    reset_password,
    seed_default_admin,
    serialize_admin,
)
from applications import apply, get_application_status, list_all, list_for_user, serialize_application, update_status
from auth_utils import admin_required, current_principal_id, user_required
from config import Config
from errors import ValidationError, register_error_handlers
from excel_utils import XLSX_MIMETYPE, export_users, get_excel_file, import_spreadsheet, list_excel_files
from internship_queries import list_domains, search_internships
from internship_utils import (
    create_internship,
    delete_internship,
    get_internship,
    serialize_internship,
    toggle_internship,
    update_internship,
)
from otp_utils import PASSWORD_RESET, REGISTRATION, request_otp
from stats_utils import analytics, dashboard_stats
from user_utils import delete_user, get_attachment, get_user, list_users, serialize_user, update_profile

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =====================================================
# 🩺 HEALTH
# =====================================================

@api.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "OK",
        "timestamp": datetime.utcnow().isoformat(),
        "database": "connected" if database.ping() else "disconnected",
        "environment": current_app.config["APP_ENV"],
    }), 200


# =====================================================
# 🔐 AUTHENTICATION ROUTES
# =====================================================

@api.route("/send-otp", methods=["POST"])
def send_otp():
    data = get_json_body()
    logger.info("📧 OTP request received for: %s", data.get("email"))
    request_otp(data.get("email"), purpose=REGISTRATION)
    return jsonify({"message": "OTP sent successfully"}), 200


@api.route("/register", methods=["POST"])
def register():
    token, user = register_user(get_json_body())
    return jsonify({
        "message": "User registered successfully",
        "token": token,
        "user": serialize_user(user),
    }), 201


@api.route("/login", methods=["POST"])
def login():
    data = get_json_body()
    token, user = authenticate_user(data.get("email"), data.get("password"))
    return jsonify({
        "message": "Login successful",
        "token": token,
        "user": serialize_user(user),
    }), 200


@api.route("/forgot-password", methods=["POST"])
def forgot_password():
    data = get_json_body()
    request_otp(data.get("email"), purpose=PASSWORD_RESET)
    return jsonify({"message": "Password reset OTP sent successfully"}), 200


@api.route("/reset-password", methods=["POST"])
def reset_password_route():
    data = get_json_body()
    reset_password(data.get("email"), data.get("otp"), data.get("newPassword"))
    return jsonify({"message": "Password reset successfully"}), 200


@api.route("/admin/login", methods=["POST"])
def admin_login():
    data = get_json_body()
    token, admin = authenticate_admin(data.get("username"), data.get("password"))
    return jsonify({
        "message": "Admin login successful",
        "token": token,
        "admin": serialize_admin(admin),
    }), 200


# =====================================================
# 👤 USER PROFILE ROUTES
# =====================================================

@api.route("/profile", methods=["GET"])
@user_required
def get_profile():
    return jsonify(serialize_user(get_user(current_principal_id()))), 200


@api.route("/profile", methods=["PUT"])
@user_required
def update_profile_route():
    user = update_profile(current_principal_id(), get_json_body())
    return jsonify({
        "message": "Profile updated successfully",
        "user": serialize_user(user),
    }), 200


@api.route("/resume/<user_id>", methods=["GET"])
def download_resume(user_id):
    content, content_type, filename = get_attachment(user_id, "resume")
    return send_file(BytesIO(content), mimetype=content_type, as_attachment=True, download_name=filename)


@api.route("/profile-picture/<user_id>", methods=["GET"])
def profile_picture(user_id):
    content, content_type, filename = get_attachment(user_id, "profilePicture")
    return send_file(BytesIO(content), mimetype=content_type, download_name=filename)


# =====================================================
# 🏢 INTERNSHIP ROUTES
# =====================================================

@api.route("/internships", methods=["GET"])
def list_internships():
    return jsonify(search_internships(request.args, active_only=True)), 200


@api.route("/domains", methods=["GET"])
def domains():
    return jsonify(list_domains()), 200


@api.route("/internships/<internship_id>", methods=["GET"])
def internship_detail(internship_id):
    return jsonify(serialize_internship(get_internship(internship_id, active_only=True))), 200


# =====================================================
# 📝 STUDENT ROUTES - Applications
# =====================================================

@api.route("/internships/<internship_id>/application-status", methods=["GET"])
@user_required
def application_status(internship_id):
    return jsonify(get_application_status(current_principal_id(), internship_id)), 200


@api.route("/internships/<internship_id>/apply", methods=["POST"])
@user_required
def apply_for_internship(internship_id):
    data = request.get_json(silent=True) or {}
    application = apply(current_principal_id(), internship_id, data.get("coverLetter"))
    return jsonify({
        "message": "Application submitted successfully",
        "application": serialize_application(application),
    }), 201


@api.route("/my-applications", methods=["GET"])
@user_required
def my_applications():
    return jsonify(list_for_user(current_principal_id())), 200


# =====================================================
# 👨‍💼 ADMIN ROUTES - Dashboard
# =====================================================

@api.route("/admin/stats", methods=["GET"])
@admin_required
def admin_stats():
    return jsonify(dashboard_stats()), 200


@api.route("/admin/analytics", methods=["GET"])
@admin_required
def admin_analytics():
    return jsonify(analytics()), 200


# =====================================================
# 👨‍💼 ADMIN ROUTES - Internships
# =====================================================

@api.route("/admin/internships", methods=["GET"])
@admin_required
def admin_list_internships():
    return jsonify(search_internships(request.args, active_only=False)), 200


@api.route("/admin/internships", methods=["POST"])
@admin_required
def admin_create_internship():
    internship = create_internship(get_json_body())
    return jsonify({
        "message": "Internship created successfully",
        "internship": serialize_internship(internship),
    }), 201


@api.route("/admin/internships/<internship_id>", methods=["PUT"])
@admin_required
def admin_update_internship(internship_id):
    internship = update_internship(internship_id, get_json_body())
    return jsonify({
        "message": "Internship updated successfully",
        "internship": serialize_internship(internship),
    }), 200


@api.route("/admin/internships/<internship_id>/toggle", methods=["PATCH"])
@admin_required
def admin_toggle_internship(internship_id):
    internship = toggle_internship(internship_id)
    state = "activated" if internship["isActive"] else "deactivated"
    return jsonify({
        "message": f"Internship {state} successfully",
        "internship": serialize_internship(internship),
    }), 200


@api.route("/admin/internships/<internship_id>", methods=["DELETE"])
@admin_required
def admin_delete_internship(internship_id):
    delete_internship(internship_id)
    return jsonify({"message": "Internship deleted successfully"}), 200


@api.route("/admin/internships/bulk-upload", methods=["POST"])
@admin_required
def admin_bulk_upload():
    upload = request.files.get("excel")
    if upload is None or not upload.filename:
        raise ValidationError("Excel file is required")

    try:
        if not upload.filename.lower().endswith(EXCEL_EXTENSIONS) and "spreadsheet" not in (upload.mimetype or ""):
            raise ValidationError("Only Excel files are allowed")
        file_bytes = upload.read()
    finally:
        upload.close()

    result = import_spreadsheet(
        file_bytes,
        original_name=upload.filename,
        uploaded_by=current_principal_id(),
        content_type=upload.mimetype,
    )

    created = len(result["internships"])
    body = {
        "message": f"{created} internships uploaded successfully from Excel file",
        "internshipsCreated": created,
        "excelFileId": result["excelFileId"],
    }
    if result["errors"]:
        body["errors"] = result["errors"]
    return jsonify(body), 201


@api.route("/admin/excel-files", methods=["GET"])
@admin_required
def admin_excel_files():
    return jsonify(list_excel_files()), 200


@api.route("/admin/excel-files/<file_id>/download", methods=["GET"])
@admin_required
def admin_download_excel_file(file_id):
    excel_file = get_excel_file(file_id)
    return send_file(
        BytesIO(excel_file["data"]),
        mimetype=excel_file.get("contentType") or XLSX_MIMETYPE,
        as_attachment=True,
        download_name=excel_file["originalName"],
    )


# =====================================================
# 👨‍💼 ADMIN ROUTES - Applications
# =====================================================

@api.route("/admin/applications", methods=["GET"])
@admin_required
def admin_applications():
    return jsonify(list_all()), 200


@api.route("/admin/applications/<application_id>", methods=["PUT"])
@admin_required
def admin_update_application(application_id):
    data = get_json_body()
    application = update_status(application_id, data.get("status"))
    return jsonify({
        "message": "Application status updated successfully",
        "application": serialize_application(application),
    }), 200


# =====================================================
# 👥 ADMIN ROUTES - Users
# =====================================================

@api.route("/admin/users", methods=["GET"])
@admin_required
def admin_users():
    return jsonify(list_users()), 200


@api.route("/admin/users/download", methods=["GET"])
@admin_required
def admin_download_users():
    content, filename = export_users(request.args.get("startDate"), request.args.get("endDate"))
    return send_file(BytesIO(content), mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)


@api.route("/admin/users/<user_id>", methods=["DELETE"])
@admin_required
def admin_delete_user(user_id):
    delete_user(user_id)
    return jsonify({"message": "User deleted successfully"}), 200


# =====================================================
# 🏭 APP FACTORY
# =====================================================

def create_app(config_object=None, database_handle=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    CORS(
        app,
        resources={
            r"/api/*": {
                "origins": app.config["CORS_ORIGINS"],
                "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
                "allow_headers": ["Content-Type", "Authorization"],
                "expose_headers": ["Content-Disposition"],
                "supports_credentials": True,
                "max_age": 600,
            }
        },
    )

    database.init_db(app, database_handle)
    register_error_handlers(app)

    @app.before_request
    def log_request():
        logger.info("📝 %s %s", request.method, request.path)

    app.register_blueprint(api)

    with app.app_context():
        try:
            database.create_indexes()
            if app.config["SEED_DEFAULT_ADMIN"]:
                seed_default_admin()
        except PyMongoError as e:
            logger.warning("⚠️ Warning: Could not prepare database at start-up: %s", e)

    return app


# =====================================================
# 🏃 RUN SERVER
# =====================================================
if __name__ == "__main__":
    app = create_app()
    logger.info("🚀 Starting InternX backend on http://localhost:5000")
    app.run(host="0.0.0.0", port=5000)
