import logging
import uuid
from datetime import datetime

from flask import current_app
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import applications_collection, internships_collection, users_collection
from errors import Conflict, NotFound, PreconditionFailed, ValidationError

logger = logging.getLogger(__name__)

APPLICATION_STATUSES = ("Pending", "Reviewed", "Accepted", "Rejected")

INTERNSHIP_SUMMARY = {"title": 1, "company": 1, "location": 1, "salary": 1}
USER_SUMMARY = {"name": 1, "email": 1, "phone": 1, "skills": 1, "resumeFilename": 1}


def serialize_application(application):
    data = dict(application)
    data["id"] = str(data.pop("_id"))
    for key in ("appliedAt", "updatedAt"):
        if isinstance(data.get(key), datetime):
            data[key] = data[key].isoformat()
    return data


def apply(user_id, internship_id, cover_letter=None):
    """Create a Pending application for an active internship.

    Uniqueness of (userId, internshipId) is left to the collection's unique
    index so concurrent duplicate requests cannot both succeed.
    """
    if cover_letter is not None and not isinstance(cover_letter, str):
        raise ValidationError("coverLetter must be a string")

    internship = internships_collection().find_one({"_id": internship_id, "isActive": True}, {"_id": 1})
    if not internship:
        raise NotFound("Internship not found or inactive")

    user = users_collection().find_one({"_id": user_id}, {"resumeFilename": 1, "resume": 1})
    if not user:
        raise NotFound("User not found")
    if current_app.config.get("REQUIRE_RESUME_TO_APPLY", True) and not user.get("resume"):
        raise PreconditionFailed("Please upload your resume before applying for internships")

    now = datetime.utcnow()
    application = {
        "_id": str(uuid.uuid4()),
        "internshipId": internship_id,
        "userId": user_id,
        "status": "Pending",
        "coverLetter": (cover_letter or "").strip(),
        "appliedAt": now,
        "updatedAt": now,
    }

    try:
        applications_collection().insert_one(application)
    except DuplicateKeyError:
        raise Conflict("You have already applied for this internship")

    users_collection().update_one({"_id": user_id}, {"$inc": {"applicationCount": 1}})
    logger.info("✅ Application %s: user %s -> internship %s", application["_id"], user_id, internship_id)
    return application


def get_application_status(user_id, internship_id):
    application = applications_collection().find_one({"userId": user_id, "internshipId": internship_id})
    return {
        "hasApplied": application is not None,
        "status": application["status"] if application else None,
        "appliedAt": application["appliedAt"].isoformat() if application else None,
    }


def update_status(application_id, status):
    """Overwrite the status with any allowed value; no transition rules"""
    if status not in APPLICATION_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(APPLICATION_STATUSES)}")

    application = applications_collection().find_one_and_update(
        {"_id": application_id},
        {"$set": {"status": status, "updatedAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not application:
        raise NotFound("Application not found")

    logger.info("📋 Application %s set to %s", application_id, status)
    return application


def _summaries(collection, ids, projection):
    docs = collection.find({"_id": {"$in": list(set(ids))}}, projection)
    return {doc["_id"]: doc for doc in docs}


def _internship_summary(doc):
    if doc is None:
        return None
    return {
        "id": doc["_id"],
        "title": doc.get("title"),
        "company": doc.get("company"),
        "location": doc.get("location"),
        "salary": doc.get("salary"),
    }


def _user_summary(doc):
    if doc is None:
        return None
    return {
        "id": doc["_id"],
        "name": doc.get("name"),
        "email": doc.get("email"),
        "phone": doc.get("phone"),
        "skills": doc.get("skills", []),
        "hasResume": bool(doc.get("resumeFilename")),
    }


def list_for_user(user_id):
    applications = list(applications_collection().find({"userId": user_id}).sort("appliedAt", -1))
    internships = _summaries(internships_collection(), [a["internshipId"] for a in applications], INTERNSHIP_SUMMARY)

    result = []
    for application in applications:
        data = serialize_application(application)
        data["internship"] = _internship_summary(internships.get(application["internshipId"]))
        result.append(data)
    return result


def list_all():
    applications = list(applications_collection().find().sort("appliedAt", -1))
    internships = _summaries(internships_collection(), [a["internshipId"] for a in applications], INTERNSHIP_SUMMARY)
    users = _summaries(users_collection(), [a["userId"] for a in applications], USER_SUMMARY)

    result = []
    for application in applications:
        data = serialize_application(application)
        data["internship"] = _internship_summary(internships.get(application["internshipId"]))
        data["user"] = _user_summary(users.get(application["userId"]))
        result.append(data)
    return result
