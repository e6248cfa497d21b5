import pytest

from applications import apply, get_application_status, list_all, list_for_user, update_status
from database import applications_collection, users_collection
from errors import Conflict, NotFound, PreconditionFailed, ValidationError
from internship_utils import delete_internship
from user_utils import delete_user


def test_apply_creates_pending_application(app, make_user, make_internship):
    user = make_user()
    internship = make_internship()

    application = apply(user["_id"], internship["_id"], "  I am keen.  ")

    assert application["status"] == "Pending"
    assert application["coverLetter"] == "I am keen."
    assert users_collection().find_one({"_id": user["_id"]})["applicationCount"] == 1

    status = get_application_status(user["_id"], internship["_id"])
    assert status["hasApplied"] is True
    assert status["status"] == "Pending"


def test_status_for_unapplied_internship(app, make_user, make_internship):
    user = make_user()
    internship = make_internship()

    assert get_application_status(user["_id"], internship["_id"]) == {
        "hasApplied": False,
        "status": None,
        "appliedAt": None,
    }


def test_second_apply_is_a_conflict(app, make_user, make_internship):
    user = make_user()
    internship = make_internship()
    apply(user["_id"], internship["_id"])

    with pytest.raises(Conflict):
        apply(user["_id"], internship["_id"])

    assert applications_collection().count_documents({"userId": user["_id"]}) == 1
    assert users_collection().find_one({"_id": user["_id"]})["applicationCount"] == 1


def test_existing_record_for_pair_wins(app, make_user, make_internship):
    # Another request already stored the pair; only the unique index stands in the way
    user = make_user()
    internship = make_internship()
    applications_collection().insert_one({
        "_id": "earlier",
        "userId": user["_id"],
        "internshipId": internship["_id"],
        "status": "Pending",
    })

    with pytest.raises(Conflict):
        apply(user["_id"], internship["_id"])
    assert applications_collection().count_documents({}) == 1


def test_apply_to_inactive_or_missing_internship(app, make_user, make_internship):
    user = make_user()
    closed = make_internship(isActive=False)

    with pytest.raises(NotFound):
        apply(user["_id"], closed["_id"])
    with pytest.raises(NotFound):
        apply(user["_id"], "no-such-internship")


def test_apply_without_resume(app, make_user, make_internship):
    user = make_user(with_resume=False)
    internship = make_internship()

    with pytest.raises(PreconditionFailed):
        apply(user["_id"], internship["_id"])
    assert applications_collection().count_documents({}) == 0


def test_resume_requirement_can_be_switched_off(app, make_user, make_internship):
    app.config["REQUIRE_RESUME_TO_APPLY"] = False
    user = make_user(with_resume=False)

    application = apply(user["_id"], make_internship()["_id"])

    assert application["status"] == "Pending"


def test_status_overwrite_is_free_form(app, make_user, make_internship):
    application = apply(make_user()["_id"], make_internship()["_id"])

    assert update_status(application["_id"], "Accepted")["status"] == "Accepted"
    assert update_status(application["_id"], "Rejected")["status"] == "Rejected"
    assert update_status(application["_id"], "Pending")["status"] == "Pending"


def test_status_must_be_known(app, make_user, make_internship):
    application = apply(make_user()["_id"], make_internship()["_id"])

    with pytest.raises(ValidationError):
        update_status(application["_id"], "Hired")
    with pytest.raises(NotFound):
        update_status("missing", "Accepted")


def test_listings_join_internship_and_user(app, make_user, make_internship):
    user = make_user(name="Asha")
    internship = make_internship(title="Data Intern", company="Globex")
    apply(user["_id"], internship["_id"])

    mine = list_for_user(user["_id"])
    assert mine[0]["internship"]["title"] == "Data Intern"
    assert mine[0]["internship"]["company"] == "Globex"

    everything = list_all()
    assert everything[0]["user"]["name"] == "Asha"
    assert everything[0]["user"]["hasResume"] is True
    assert everything[0]["internship"]["id"] == internship["_id"]


def test_deleted_internship_leaves_application_with_empty_join(app, make_user, make_internship):
    user = make_user()
    internship = make_internship()
    apply(user["_id"], internship["_id"])

    delete_internship(internship["_id"])

    mine = list_for_user(user["_id"])
    assert len(mine) == 1
    assert mine[0]["internship"] is None


def test_deleting_user_removes_their_applications(app, make_user, make_internship):
    user = make_user()
    other = make_user(email="other@example.com")
    internship = make_internship()
    apply(user["_id"], internship["_id"])
    apply(other["_id"], internship["_id"])

    delete_user(user["_id"])

    assert applications_collection().count_documents({}) == 1
    assert applications_collection().find_one()["userId"] == other["_id"]
    with pytest.raises(NotFound):
        delete_user(user["_id"])


def test_cover_letter_must_be_text(app, make_user, make_internship):
    user = make_user()

    with pytest.raises(ValidationError):
        apply(user["_id"], make_internship()["_id"], 5)
    assert applications_collection().count_documents({}) == 0
