import base64
import binascii
import logging
from datetime import datetime

from pymongo import ReturnDocument

from database import applications_collection, users_collection
from errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

STUDY_PREFERENCES = ("India", "Abroad", "Both")

PROFILE_TEXT_FIELDS = ("name", "phone", "currentCity", "futureGoals", "section", "higherEducation")

EDUCATION_FIELDS = {
    "twelfthPU": ("institution", "passedYear", "percentage"),
    "ugDegree": ("institution", "course", "year", "percentage"),
    "pgMasters": ("institution", "course", "year", "percentage"),
}

ATTACHMENTS = {
    "resume": ("resumeData", "resumeFilename", "resumeContentType", "application/pdf", "resume.pdf"),
    "profilePicture": (
        "profilePictureData", "profilePictureFilename", "profilePictureContentType",
        "image/jpeg", "profile-picture.jpg",
    ),
}


def normalize_string_list(value):
    """List or comma-separated string -> trimmed list without duplicates"""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValidationError("Expected a list of strings")

    result = []
    for item in value:
        item = str(item).strip()
        if item and item not in result:
            result.append(item)
    return result


def _education_block(name, value):
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be an object")
    return {key: str(value.get(key) or "").strip() for key in EDUCATION_FIELDS[name]}


def _decode_attachment(field, data):
    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise ValidationError(f"{field} must be base64 encoded")


def extract_profile_fields(data):
    """Whitelisted, normalized profile fields present in ``data``"""
    fields = {}

    for key in PROFILE_TEXT_FIELDS:
        if key in data and data[key] is not None:
            fields[key] = str(data[key]).strip()

    if data.get("studyPreference"):
        if data["studyPreference"] not in STUDY_PREFERENCES:
            raise ValidationError(f"studyPreference must be one of: {', '.join(STUDY_PREFERENCES)}")
        fields["studyPreference"] = data["studyPreference"]

    for name in EDUCATION_FIELDS:
        if name in data:
            block = _education_block(name, data[name])
            if block is not None:
                fields[name] = block

    if "skills" in data:
        fields["skills"] = normalize_string_list(data["skills"])
    if "keywords" in data:
        fields["keywords"] = normalize_string_list(data["keywords"])

    for kind, (data_key, filename_key, type_key, default_type, default_name) in ATTACHMENTS.items():
        if data.get(data_key):
            _decode_attachment(data_key, data[data_key])
            fields[kind] = data[data_key]
            fields[f"{kind}Filename"] = data.get(filename_key) or default_name
            fields[f"{kind}ContentType"] = data.get(type_key) or default_type

    return fields


def serialize_user(user):
    """Public projection of a user document"""
    return {
        "id": str(user["_id"]),
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "phone": user.get("phone", ""),
        "currentCity": user.get("currentCity", ""),
        "futureGoals": user.get("futureGoals", ""),
        "studyPreference": user.get("studyPreference", "India"),
        "section": user.get("section", ""),
        "higherEducation": user.get("higherEducation", ""),
        "twelfthPU": user.get("twelfthPU"),
        "ugDegree": user.get("ugDegree"),
        "pgMasters": user.get("pgMasters"),
        "skills": user.get("skills", []),
        "keywords": user.get("keywords", []),
        "resume": bool(user.get("resume") or user.get("resumeFilename")),
        "resumeFilename": user.get("resumeFilename"),
        "profilePicture": bool(user.get("profilePicture") or user.get("profilePictureFilename")),
        "applicationCount": user.get("applicationCount", 0),
        "isVerified": user.get("isVerified", False),
        "createdAt": user["createdAt"].isoformat() if isinstance(user.get("createdAt"), datetime) else user.get("createdAt"),
    }


def get_user(user_id):
    user = users_collection().find_one({"_id": user_id})
    if not user:
        raise NotFound("User not found")
    return user


def update_profile(user_id, data):
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    update_fields = extract_profile_fields(data)
    if "name" in update_fields and not update_fields["name"]:
        raise ValidationError("Name cannot be empty")
    update_fields["updatedAt"] = datetime.utcnow()

    user = users_collection().find_one_and_update(
        {"_id": user_id},
        {"$set": update_fields},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise NotFound("User not found")
    return user


def get_attachment(user_id, kind):
    """Decoded attachment bytes with content type and filename"""
    _, _, _, default_type, default_name = ATTACHMENTS[kind]
    user = users_collection().find_one({"_id": user_id})
    if not user or not user.get(kind):
        label = "Resume" if kind == "resume" else "Profile picture"
        raise NotFound(f"{label} not found")

    content = base64.b64decode(user[kind])
    return (
        content,
        user.get(f"{kind}ContentType") or default_type,
        user.get(f"{kind}Filename") or default_name,
    )


def list_users():
    users = users_collection().find(
        {}, {"password": 0, "resume": 0, "profilePicture": 0}
    ).sort("createdAt", -1)
    return [serialize_user(user) for user in users]


def delete_user(user_id):
    """Hard delete a user together with their applications"""
    result = users_collection().delete_one({"_id": user_id})
    if result.deleted_count == 0:
        raise NotFound("User not found")
    removed = applications_collection().delete_many({"userId": user_id}).deleted_count
    logger.info("🗑️ Deleted user %s and %d applications", user_id, removed)
