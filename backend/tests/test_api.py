"""
API tests through FastAPI's TestClient: routing, auth dependencies and the
mapping of domain errors onto HTTP responses.
"""
import pytest
from bson import ObjectId

import models
import uploads


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(uploads, "UPLOAD_PATH", str(tmp_path / "uploads"))


def _project_form(**overrides) -> dict:
    form = {
        "title": "Smart Traffic Light System",
        "description": "Adaptive signal timing",
        "projectType": "major",
        "technologyStack": "Python, OpenCV",
        "objectives": "Cut waiting time",
        "academicYear": "2025-26",
        "semester": "7",
    }
    form.update(overrides)
    return form


@pytest.fixture
def group_setup(client, students, auth_headers):
    leader, member = students(2)
    response = client.post(
        "/groups",
        json={"groupName": "Signal Crew", "memberIds": [member["_id"]]},
        headers=auth_headers(leader),
    )
    assert response.status_code == 201
    return response.json(), leader, member


@pytest.fixture
def project_setup(client, group_setup, faculty, auth_headers):
    group, leader, member = group_setup
    response = client.post(
        "/projects",
        data=_project_form(groupId=group["_id"], guideId=faculty["_id"]),
        headers=auth_headers(leader),
    )
    assert response.status_code == 201
    return response.json()["project"], leader, member


# =============================================================================
# AUTH
# =============================================================================
class TestAuth:

    def test_student_signup_and_login(self, client):
        payload = {
            "fullName": "Asha Verma",
            "email": "Asha.Verma@campus.edu",
            "password": "correct-horse",
            "role": "student",
            "department": "CSE",
        }
        response = client.post("/signup", json=payload)
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "asha.verma@campus.edu"
        assert data["isVerified"] is True
        assert "hashedPassword" not in data

        login = client.post("/login", json={"email": payload["email"], "password": payload["password"]})
        assert login.status_code == 200
        assert login.json()["token_type"] == "bearer"

    def test_duplicate_email(self, client, make_user):
        existing = make_user()
        response = client.post("/signup", json={
            "fullName": "Someone Else", "email": existing["email"], "password": "password123", "role": "student",
        })
        assert response.status_code == 409
        assert response.json()["code"] == "EMAIL_TAKEN"

    def test_admin_cannot_self_register(self, client):
        response = client.post("/signup", json={
            "fullName": "Eve Admin", "email": "eve@campus.edu", "password": "password123", "role": "admin",
        })
        assert response.status_code == 403

    def test_faculty_needs_verification(self, client, admin, auth_headers):
        client.post("/signup", json={
            "fullName": "Dr Rao", "email": "rao@campus.edu", "password": "password123", "role": "faculty",
        })
        credentials = {"email": "rao@campus.edu", "password": "password123"}
        assert client.post("/login", json=credentials).status_code == 401

        pending = client.get("/api/admin/users?role=faculty&isVerified=false", headers=auth_headers(admin)).json()
        assert [u["email"] for u in pending] == ["rao@campus.edu"]

        verified = client.put(f"/api/admin/users/{pending[0]['_id']}/verify", headers=auth_headers(admin))
        assert verified.json()["isVerified"] is True
        assert client.post("/login", json=credentials).status_code == 200

    def test_wrong_password(self, client, make_user):
        user = make_user(password="right-password")
        response = client.post("/login", json={"email": user["email"], "password": "wrong-password"})
        assert response.status_code == 401

    def test_missing_and_bad_tokens(self, client):
        assert client.get("/users/me").status_code == 401
        assert client.get("/users/me", headers={"Authorization": "Token abc"}).status_code == 401
        assert client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    def test_profile_update_cannot_change_role(self, client, make_user, auth_headers):
        user = make_user()
        response = client.put(
            f"/users/{user['_id']}",
            json={"fullName": "New Name", "role": "admin"},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json()["fullName"] == "New Name"
        assert response.json()["role"] == "student"

    def test_null_name_leaves_profile_unchanged(self, client, make_user, auth_headers):
        user = make_user(fullName="Asha Rao")
        response = client.put(f"/users/{user['_id']}", json={"fullName": None}, headers=auth_headers(user))
        assert response.status_code == 400
        assert client.get(f"/users/{user['_id']}", headers=auth_headers(user)).json()["fullName"] == "Asha Rao"

    def test_malformed_user_id_not_found(self, client, make_user, auth_headers):
        assert client.get("/users/not-an-object-id", headers=auth_headers(make_user())).status_code == 404

    def test_cannot_update_other_user(self, client, students, auth_headers):
        me, other = students(2)
        response = client.put(f"/users/{other['_id']}", json={"fullName": "Hacked"}, headers=auth_headers(me))
        assert response.status_code == 403

    def test_admin_routes_forbidden_to_students(self, client, make_user, auth_headers):
        response = client.get("/api/admin/users", headers=auth_headers(make_user()))
        assert response.status_code == 403
        assert response.json()["code"] == "NOT_AUTHORIZED"


# =============================================================================
# GROUPS
# =============================================================================
class TestGroupEndpoints:

    def test_create_notifies_added_member(self, client, group_setup, db):
        group, leader, member = group_setup
        assert group["members"][0]["role"] == "leader"
        # background tasks run before TestClient returns
        note = db.notifications.find_one({"userId": member["_id"]})
        assert "Signal Crew" in note["message"]
        assert db.notifications.count_documents({"userId": leader["_id"]}) == 0

    def test_capacity_maps_to_409(self, client, group_setup, students, auth_headers):
        group, leader, _ = group_setup
        extra = students(3)
        for student in extra[:2]:
            response = client.post(
                f"/groups/{group['_id']}/add-member", json={"email": student["email"]}, headers=auth_headers(leader)
            )
            assert response.status_code == 200

        response = client.post(
            f"/groups/{group['_id']}/add-member", json={"studentId": extra[2]["_id"]}, headers=auth_headers(leader)
        )
        assert response.status_code == 409
        assert response.json() == {"detail": "Group is full (max 4 members)", "code": "GROUP_FULL"}

    def test_add_member_requires_id_or_email(self, client, group_setup, auth_headers):
        group, leader, _ = group_setup
        response = client.post(f"/groups/{group['_id']}/add-member", json={}, headers=auth_headers(leader))
        assert response.status_code == 400

    def test_leader_leave_blocked(self, client, group_setup, auth_headers):
        group, leader, _ = group_setup
        response = client.post(f"/groups/{group['_id']}/leave", headers=auth_headers(leader))
        assert response.status_code == 400
        assert response.json()["code"] == "INVARIANT_VIOLATION"

    def test_transfer_then_leave_then_delete(self, client, group_setup, auth_headers):
        group, leader, member = group_setup
        response = client.patch(
            f"/groups/{group['_id']}/transfer-leader", json={"newLeaderId": member["_id"]}, headers=auth_headers(leader)
        )
        assert response.status_code == 200

        left = client.post(f"/groups/{group['_id']}/leave", headers=auth_headers(leader)).json()
        assert left["groupDeleted"] is False

        last = client.post(f"/groups/{group['_id']}/leave", headers=auth_headers(member)).json()
        assert last["groupDeleted"] is True
        assert client.get(f"/groups/{group['_id']}", headers=auth_headers(member)).status_code == 404

    def test_remove_member(self, client, group_setup, auth_headers):
        group, leader, member = group_setup
        response = client.post(
            f"/groups/{group['_id']}/remove-member", json={"studentId": member["_id"]}, headers=auth_headers(leader)
        )
        assert response.status_code == 200
        assert len(response.json()["group"]["members"]) == 1

    def test_request_transfer(self, client, group_setup, auth_headers, db):
        group, leader, member = group_setup
        response = client.post(f"/groups/{group['_id']}/request-transfer", headers=auth_headers(member))
        assert response.status_code == 200
        assert db.notifications.count_documents({"userId": leader["_id"]}) == 1

    def test_malformed_group_id(self, client, make_user, auth_headers):
        response = client.get("/groups/not-an-object-id", headers=auth_headers(make_user()))
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_FAILED"

    def test_user_groups(self, client, group_setup, auth_headers):
        group, _, member = group_setup
        response = client.get(f"/users/{member['_id']}/groups", headers=auth_headers(member))
        assert [g["_id"] for g in response.json()] == [group["_id"]]


# =============================================================================
# PROJECTS
# =============================================================================
class TestProjectEndpoints:

    def test_submission_notifies_guide(self, project_setup, faculty, db):
        project, _, _ = project_setup
        assert project["status"] == "proposed"
        assert project["technologyStack"] == ["Python", "OpenCV"]
        assert db.notifications.count_documents({"userId": faculty["_id"]}) == 1

    def test_duplicate_warning(self, client, group_setup, make_project, auth_headers):
        group, leader, _ = group_setup
        make_project("Smart Traffic Management System")

        response = client.post("/projects", data=_project_form(groupId=group["_id"]), headers=auth_headers(leader))

        assert response.status_code == 201
        warning = response.json()["duplicateWarning"]
        assert warning["message"] == "Similar projects found"
        assert warning["similarProjects"][0]["similarity"] == 75

    def test_no_warning_for_unique_title(self, client, group_setup, auth_headers):
        group, leader, _ = group_setup
        response = client.post("/projects", data=_project_form(groupId=group["_id"]), headers=auth_headers(leader))
        assert response.json()["duplicateWarning"] is None

    def test_invalid_project_type(self, client, group_setup, auth_headers, db):
        group, leader, _ = group_setup
        response = client.post(
            "/projects", data=_project_form(groupId=group["_id"], projectType="huge"), headers=auth_headers(leader)
        )
        assert response.status_code == 400
        assert db.projects.count_documents({}) == 0

    def test_with_proposal_document(self, client, group_setup, auth_headers, db):
        group, leader, _ = group_setup
        response = client.post(
            "/projects",
            data=_project_form(groupId=group["_id"]),
            files={"proposalDocument": ("proposal.pdf", b"%PDF-1.4 proposal", "application/pdf")},
            headers=auth_headers(leader),
        )
        assert response.status_code == 201
        project = response.json()["project"]
        stored = db.files.find_one({"_id": ObjectId(project["proposalFileId"])})
        assert stored["fileName"] == "proposal.pdf"
        assert stored["projectId"] == project["_id"]

    def test_bad_proposal_type_stores_nothing(self, client, group_setup, auth_headers, db):
        group, leader, _ = group_setup
        response = client.post(
            "/projects",
            data=_project_form(groupId=group["_id"]),
            files={"proposalDocument": ("virus.exe", b"MZ", "application/octet-stream")},
            headers=auth_headers(leader),
        )
        assert response.status_code == 400
        assert db.projects.count_documents({}) == 0

    def test_duplicates_endpoint(self, client, make_project, make_user, auth_headers):
        make_project("Smart Traffic Management System")
        response = client.get(
            "/projects/duplicates", params={"title": "Smart Traffic Light System"}, headers=auth_headers(make_user())
        )
        assert response.status_code == 200
        assert response.json()["isDuplicate"] is True

    def test_approval_flow(self, client, project_setup, faculty, make_user, auth_headers, db):
        project, leader, member = project_setup

        stranger = make_user(role="faculty")
        denied = client.post(f"/projects/{project['_id']}/approve", headers=auth_headers(stranger))
        assert denied.status_code == 403

        approved = client.post(f"/projects/{project['_id']}/approve", headers=auth_headers(faculty))
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert db.notifications.count_documents({"userId": member["_id"], "type": "success"}) == 1

        skip = client.patch(
            f"/projects/{project['_id']}/status", json={"status": "completed"}, headers=auth_headers(faculty)
        )
        assert skip.status_code == 409
        assert skip.json()["code"] == "INVALID_TRANSITION"

        started = client.patch(
            f"/projects/{project['_id']}/status", json={"status": "in_progress"}, headers=auth_headers(faculty)
        )
        assert started.json()["status"] == "in_progress"

    def test_reject_without_body(self, client, project_setup, admin, auth_headers):
        project, _, _ = project_setup
        response = client.post(f"/projects/{project['_id']}/reject", headers=auth_headers(admin))
        assert response.json()["rejectionReason"] == "No reason provided"

    def test_update_cannot_touch_status(self, client, project_setup, auth_headers):
        project, leader, _ = project_setup
        response = client.put(
            f"/projects/{project['_id']}", json={"objectives": "New goals", "status": "completed"}, headers=auth_headers(leader)
        )
        assert response.json()["status"] == "proposed"
        assert response.json()["objectives"] == "New goals"

    def test_null_fields_are_not_stored(self, client, project_setup, admin, auth_headers):
        project, _, _ = project_setup
        response = client.put(
            f"/projects/{project['_id']}",
            json={"title": None, "technologyStack": None, "objectives": "Sharper goals"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["title"] == project["title"]
        assert response.json()["technologyStack"] == project["technologyStack"]

        only_null = client.put(f"/projects/{project['_id']}", json={"title": None}, headers=auth_headers(admin))
        assert only_null.status_code == 400
        assert client.get("/projects", headers=auth_headers(admin)).status_code == 200

    def test_delete_is_admin_only(self, client, project_setup, admin, auth_headers):
        project, leader, _ = project_setup
        assert client.delete(f"/projects/{project['_id']}", headers=auth_headers(leader)).status_code == 403
        assert client.delete(f"/projects/{project['_id']}", headers=auth_headers(admin)).status_code == 200
        assert client.get(f"/projects/{project['_id']}", headers=auth_headers(admin)).status_code == 404

    def test_list_for_student(self, client, project_setup, auth_headers):
        project, _, member = project_setup
        response = client.get("/projects", headers=auth_headers(member))
        assert [p["_id"] for p in response.json()] == [project["_id"]]


# =============================================================================
# MILESTONES, GUIDES, ANALYTICS, NOTIFICATIONS, FILES
# =============================================================================
class TestMilestoneEndpoints:

    def test_milestone_round_trip(self, client, project_setup, faculty, auth_headers, db):
        project, leader, member = project_setup
        created = client.post(
            f"/projects/{project['_id']}/milestones",
            json={"title": "Design Review", "description": "UML and ER diagrams", "dueDate": "2030-01-15T10:00:00Z"},
            headers=auth_headers(faculty),
        )
        assert created.status_code == 201
        milestone_id = created.json()["_id"]

        submitted = client.post(
            f"/milestones/{milestone_id}/submit", json={"submissionText": "See attached"}, headers=auth_headers(member)
        )
        assert submitted.json()["status"] == "submitted"

        feedback = client.post(
            f"/milestones/{milestone_id}/feedback",
            json={"feedbackText": "Solid work", "marks": 88, "status": "approved"},
            headers=auth_headers(faculty),
        )
        assert feedback.status_code == 201

        listed = client.get(f"/projects/{project['_id']}/milestones", headers=auth_headers(leader)).json()
        assert listed[0]["status"] == "approved"
        assert client.get(f"/milestones/{milestone_id}/feedback", headers=auth_headers(leader)).json()[0]["marks"] == 88

    def test_update_ignores_null_due_date(self, client, project_setup, faculty, auth_headers):
        project, leader, _ = project_setup
        created = client.post(
            f"/projects/{project['_id']}/milestones",
            json={"title": "Design Review", "description": "UML and ER diagrams", "dueDate": "2030-01-15T10:00:00Z"},
            headers=auth_headers(faculty),
        ).json()

        response = client.put(
            f"/milestones/{created['_id']}", json={"title": "Design Sign-off", "dueDate": None}, headers=auth_headers(faculty)
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Design Sign-off"
        assert response.json()["dueDate"].startswith("2030-01-15T10:00:00")
        listed = client.get(f"/projects/{project['_id']}/milestones", headers=auth_headers(leader))
        assert listed.status_code == 200

    def test_student_cannot_create_milestone(self, client, project_setup, auth_headers):
        project, leader, _ = project_setup
        response = client.post(
            f"/projects/{project['_id']}/milestones",
            json={"title": "Sneaky", "description": "x", "dueDate": "2030-01-15T10:00:00Z"},
            headers=auth_headers(leader),
        )
        assert response.status_code == 403


class TestAllocationAndAnalyticsEndpoints:

    def test_assign_and_reassign(self, client, project_setup, faculty, make_user, admin, auth_headers, db):
        project, _, member = project_setup
        new_guide = make_user(role="faculty")

        response = client.put(
            f"/allocations/{project['_id']}", json={"guideId": new_guide["_id"]}, headers=auth_headers(admin)
        )
        assert response.json()["guideId"] == new_guide["_id"]
        assert db.notifications.find_one({"userId": faculty["_id"], "type": "warning"}) is not None

        guides = client.get("/guides", headers=auth_headers(member)).json()
        assert {g["id"] for g in guides} == {faculty["_id"], new_guide["_id"]}

    def test_allocation_requires_admin(self, client, project_setup, faculty, auth_headers):
        project, leader, _ = project_setup
        response = client.post(
            "/allocations", json={"projectId": project["_id"], "guideId": faculty["_id"]}, headers=auth_headers(leader)
        )
        assert response.status_code == 403

    def test_dashboard_admin_only(self, client, project_setup, admin, faculty, auth_headers):
        assert client.get("/analytics/dashboard", headers=auth_headers(faculty)).status_code == 403
        data = client.get("/analytics/dashboard", headers=auth_headers(admin)).json()
        assert data["overview"]["totalProjects"] == 1

    def test_faculty_reports(self, client, project_setup, faculty, auth_headers):
        assert client.get("/analytics/project-status", headers=auth_headers(faculty)).status_code == 200
        assert client.get("/analytics/delayed", headers=auth_headers(faculty)).json() == {"count": 0, "delayedProjects": []}

    def test_duplicate_report(self, client, make_project, admin, auth_headers):
        make_project("Smart Traffic Management System")
        make_project("Smart Traffic Monitoring System")
        data = client.get("/analytics/duplicates", headers=auth_headers(admin)).json()
        assert data["count"] == 1


class TestNotificationEndpoints:

    def test_list_and_mark_read(self, client, group_setup, auth_headers):
        _, _, member = group_setup
        headers = auth_headers(member)

        listing = client.get("/notifications", headers=headers).json()
        assert listing["unreadCount"] == 1
        note_id = listing["notifications"][0]["_id"]

        assert client.put(f"/notifications/{note_id}/read", headers=headers).json()["isRead"] is True
        assert client.get("/notifications", headers=headers).json()["unreadCount"] == 0

        assert client.put("/notifications/read-all", headers=headers).json()["data"] == {"updated": 0}


class TestFileEndpoints:

    def test_upload_and_download(self, client, make_user, auth_headers):
        headers = auth_headers(make_user())
        uploaded = client.post(
            "/upload", files={"file": ("report.docx", b"docx-bytes", "application/msword")}, headers=headers
        )
        assert uploaded.status_code == 201
        assert uploaded.json()["fileSize"] == len(b"docx-bytes")

        downloaded = client.get(f"/files/{uploaded.json()['_id']}", headers=headers)
        assert downloaded.status_code == 200
        assert downloaded.content == b"docx-bytes"

    def test_disallowed_extension(self, client, make_user, auth_headers):
        response = client.post(
            "/upload", files={"file": ("script.sh", b"rm -rf", "text/plain")}, headers=auth_headers(make_user())
        )
        assert response.status_code == 400

    def test_unknown_file(self, client, make_user, auth_headers):
        response = client.get(f"/files/{ObjectId()}", headers=auth_headers(make_user()))
        assert response.status_code == 404


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_mongo_model_accepts_id_or_alias():
    assert "Config" not in vars(models.MongoModel)
    assert models.MongoModel(id="abc").model_dump(by_alias=True) == {"_id": "abc"}
    assert models.MongoModel.model_validate({"_id": "xyz"}).id == "xyz"
