"""
Search, filter and paginate postings from query-string parameters.

    search     -> title / company / description, case-insensitive substring (OR)
    location   -> case-insensitive substring
    domain     -> case-insensitive substring
    position   -> case-insensitive substring
    minSalary  -> salary >= value
    maxSalary  -> salary <= value
    page       -> 1-based page number (default 1)
    limit      -> page size (default 12, max 100)
"""
import math
import re

from database import internships_collection
from errors import ValidationError
from internship_utils import serialize_internship

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 12
MAX_LIMIT = 100

TEXT_FILTERS = ("location", "domain", "position")
SEARCH_FIELDS = ("title", "company", "description")


def _param(params, name):
    value = params.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _contains(value):
    return {"$regex": re.escape(value), "$options": "i"}


def _parse_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def build_internship_query(params, active_only=True):
    """Translate request parameters into a MongoDB filter"""
    query = {}
    if active_only:
        query["isActive"] = True

    search = _param(params, "search")
    if search:
        query["$or"] = [{field: _contains(search)} for field in SEARCH_FIELDS]

    for field in TEXT_FILTERS:
        value = _param(params, field)
        if value:
            query[field] = _contains(value)

    min_salary = _param(params, "minSalary")
    max_salary = _param(params, "maxSalary")
    if min_salary is not None or max_salary is not None:
        query["salary"] = {}
        if min_salary is not None:
            query["salary"]["$gte"] = _parse_int(min_salary, "minSalary")
        if max_salary is not None:
            query["salary"]["$lte"] = _parse_int(max_salary, "maxSalary")

    return query


def parse_pagination(params):
    page = _param(params, "page")
    limit = _param(params, "limit")

    page = DEFAULT_PAGE if page is None else _parse_int(page, "page")
    limit = DEFAULT_LIMIT if limit is None else _parse_int(limit, "limit")

    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit <= 0:
        raise ValidationError("limit must be a positive integer")
    return page, min(limit, MAX_LIMIT)


def search_internships(params, active_only=True):
    query = build_internship_query(params, active_only=active_only)
    page, limit = parse_pagination(params)

    collection = internships_collection()
    total = collection.count_documents(query)
    cursor = (
        collection.find(query)
        .sort([("createdAt", -1), ("_id", -1)])
        .skip((page - 1) * limit)
        .limit(limit)
    )

    return {
        "internships": [serialize_internship(doc) for doc in cursor],
        "pagination": {
            "current": page,
            "pages": math.ceil(total / limit),
            "total": total,
        },
    }


def list_domains():
    domains = internships_collection().distinct("domain", {"isActive": True})
    return sorted(d for d in domains if d)
