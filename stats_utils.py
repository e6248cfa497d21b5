from collections import Counter
from datetime import datetime

from database import applications_collection, internships_collection, users_collection


def dashboard_stats():
    return {
        "totalInternships": internships_collection().count_documents({}),
        "activeInternships": internships_collection().count_documents({"isActive": True}),
        "totalApplications": applications_collection().count_documents({}),
        "pendingApplications": applications_collection().count_documents({"status": "Pending"}),
        "totalUsers": users_collection().count_documents({}),
    }


def _group_count(collection, field, limit=None):
    pipeline = [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]
    if limit:
        pipeline.append({"$limit": limit})
    return list(collection.aggregate(pipeline))


def monthly_registrations(months=12):
    """Registrations per calendar month, newest month first"""
    counts = Counter()
    for user in users_collection().find({}, {"createdAt": 1}):
        created_at = user.get("createdAt")
        if isinstance(created_at, datetime):
            counts[(created_at.year, created_at.month)] += 1

    return [
        {"_id": {"year": year, "month": month}, "count": counts[(year, month)]}
        for year, month in sorted(counts, reverse=True)[:months]
    ]


def analytics():
    data = dashboard_stats()
    data.pop("pendingApplications")
    data.update({
        "applicationsByStatus": _group_count(applications_collection(), "status"),
        "internshipsByDomain": _group_count(internships_collection(), "domain", limit=10),
        "monthlyRegistrations": monthly_registrations(),
        "studyPreferences": _group_count(users_collection(), "studyPreference"),
    })
    return data
