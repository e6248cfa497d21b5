import logging
import re
import uuid
from datetime import datetime

from pymongo import ReturnDocument

from database import internships_collection
from errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = [
    "title", "company", "location", "domain", "position",
    "salary", "type", "duration", "description",
]
TEXT_FIELDS = [
    "title", "company", "location", "domain", "position", "type", "duration", "description",
    "source", "companyWebsite", "companyEmail", "applicationLink", "stipendRange",
]


def parse_salary(value):
    """Non-negative int salary; raises ValidationError for anything else"""
    if isinstance(value, bool):
        raise ValidationError("salary must be a non-negative integer")
    try:
        salary = int(str(value).replace(",", "").strip())
    except (TypeError, ValueError):
        raise ValidationError("salary must be a non-negative integer")
    if salary < 0:
        raise ValidationError("salary must be a non-negative integer")
    return salary


def parse_active_flag(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError("isActive must be true or false")


def split_requirements(value):
    """Comma- or newline-separated text (or a list) -> trimmed list"""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = re.split(r"[,\n]", str(value))
    return [str(item).strip() for item in items if str(item).strip()]


def serialize_internship(doc):
    internship = dict(doc)
    internship["id"] = str(internship.pop("_id"))
    for key in ("createdAt", "updatedAt"):
        if isinstance(internship.get(key), datetime):
            internship[key] = internship[key].isoformat()
    return internship


def validate_internship(data, partial=False):
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    if not partial:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    fields = {}
    for key in TEXT_FIELDS:
        if key in data and data[key] is not None:
            fields[key] = str(data[key]).strip()
            if key in REQUIRED_FIELDS and not fields[key]:
                raise ValidationError(f"{key} cannot be empty")

    if "salary" in data:
        fields["salary"] = parse_salary(data["salary"])
    if "requirements" in data:
        fields["requirements"] = split_requirements(data["requirements"])
    if "isActive" in data:
        fields["isActive"] = parse_active_flag(data["isActive"])

    return fields


def new_internship_document(fields, now=None):
    now = now or datetime.utcnow()
    doc = {
        "_id": str(uuid.uuid4()),
        "requirements": [],
        "isActive": True,
        "source": "Manual",
        "createdAt": now,
        "updatedAt": now,
    }
    doc.update(fields)
    return doc


def create_internship(data):
    doc = new_internship_document(validate_internship(data))
    internships_collection().insert_one(doc)
    logger.info("✅ Internship created: %s at %s", doc["title"], doc["company"])
    return doc


def get_internship(internship_id, active_only=False):
    query = {"_id": internship_id}
    if active_only:
        query["isActive"] = True
    internship = internships_collection().find_one(query)
    if not internship:
        raise NotFound("Internship not found")
    return internship


def update_internship(internship_id, data):
    fields = validate_internship(data, partial=True)
    fields["updatedAt"] = datetime.utcnow()
    internship = internships_collection().find_one_and_update(
        {"_id": internship_id},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    if not internship:
        raise NotFound("Internship not found")
    return internship


def toggle_internship(internship_id):
    internship = get_internship(internship_id)
    updated = internships_collection().find_one_and_update(
        {"_id": internship_id},
        {"$set": {"isActive": not internship.get("isActive", True), "updatedAt": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Internship not found")
    return updated


def delete_internship(internship_id):
    result = internships_collection().delete_one({"_id": internship_id})
    if result.deleted_count == 0:
        raise NotFound("Internship not found")
    logger.info("🗑️ Internship deleted: %s", internship_id)
