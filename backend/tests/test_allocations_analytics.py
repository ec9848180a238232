"""
Tests for guide allocation and the analytics reports
"""
from datetime import timedelta

import pytest

import analytics
import errors
from allocations import AllocationService
from database import utcnow
from events import GuideAssigned


class TestAllocation:

    def test_list_guides_least_loaded_first(self, db, make_user, make_project):
        busy = make_user(role="faculty", fullName="Busy Guide")
        idle = make_user(role="faculty", fullName="Idle Guide")
        make_user(role="faculty", fullName="Pending Guide", isVerified=False)
        make_project("Active One", guide_id=busy["_id"], status="approved")
        make_project("Active Two", guide_id=busy["_id"], status="in_progress")
        make_project("Finished", guide_id=idle["_id"], status="completed")

        guides = AllocationService(db).list_guides()

        assert [(g["fullName"], g["projectCount"]) for g in guides] == [("Idle Guide", 0), ("Busy Guide", 2)]

    def test_assign_guide(self, db, faculty, make_project):
        project = make_project("Unassigned Project")
        service = AllocationService(db)

        updated = service.assign_guide(project["_id"], faculty["_id"])

        assert updated["guideId"] == faculty["_id"]
        event = service.drain_events()[0]
        assert isinstance(event, GuideAssigned)
        assert event.previousGuideId is None

    def test_reassign_records_previous_guide(self, db, faculty, make_user, make_project):
        old = make_user(role="faculty")
        project = make_project("Guided Project", guide_id=old["_id"])
        service = AllocationService(db)

        service.assign_guide(project["_id"], faculty["_id"])

        assert service.drain_events()[0].previousGuideId == old["_id"]

    def test_student_is_not_a_guide(self, db, make_user, make_project):
        project = make_project("Some Project")
        with pytest.raises(errors.NotFoundError):
            AllocationService(db).assign_guide(project["_id"], make_user()["_id"])

    def test_workload_counts(self, db, faculty, make_project):
        make_project("P1", guide_id=faculty["_id"], status="proposed")
        make_project("P2", guide_id=faculty["_id"], status="in_progress")
        make_project("P3", guide_id=faculty["_id"], status="completed")

        workload = AllocationService(db).guide_workload(faculty["_id"])

        assert workload["stats"] == {"total": 3, "proposed": 1, "approved": 0, "inProgress": 1, "completed": 1}
        assert len(workload["projects"]) == 3


class TestAnalytics:

    def test_dashboard(self, db, make_user, faculty, make_project):
        make_user()
        make_project("Alpha Project", status="proposed")
        make_project("Beta Project", status="approved", projectType="minor")

        data = analytics.dashboard(db)

        assert data["overview"]["totalProjects"] == 2
        assert data["overview"]["totalStudents"] == 1
        assert data["overview"]["totalFaculty"] == 1
        assert data["overview"]["pendingReviews"] == 1
        assert {d["_id"]: d["count"] for d in data["statusDistribution"]} == {"approved": 1, "proposed": 1}
        assert len(data["recentProjects"]) == 2

    def test_guide_workload_aggregate(self, db, faculty, make_project):
        make_project("A", guide_id=faculty["_id"], status="approved")
        make_project("B", guide_id=faculty["_id"], status="rejected")

        rows = analytics.guide_workload(db)

        assert rows == [{
            "guideId": faculty["_id"],
            "guideName": faculty["fullName"],
            "department": faculty["department"],
            "projectCount": 1,
        }]

    def test_project_status_completion_rate(self, db, make_project):
        project = make_project("A", academicYear="2025-26")
        make_project("B", academicYear="2024-25")
        db.milestones.insert_many([
            {"projectId": project["_id"], "status": "approved"},
            {"projectId": project["_id"], "status": "pending"},
            {"projectId": project["_id"], "status": "submitted"},
        ])

        report = analytics.project_status(db, academic_year="2025-26")

        assert report["statusData"] == [{"status": "proposed", "types": [{"type": "major", "count": 1}], "total": 1}]
        assert report["milestoneStats"] == {"total": 3, "completed": 1, "completionRate": "33.33%"}

    def test_duplicate_report_lists_each_cluster_once(self, db, make_project):
        make_project("Smart Traffic Management System")
        make_project("Smart Traffic Monitoring System")
        make_project("Smart Traffic Light System", status="rejected")
        make_project("Hospital Queue Manager")

        report = analytics.duplicate_report(db)

        assert len(report) == 1
        assert report[0]["mainProject"]["title"] == "Smart Traffic Management System"
        assert [s["project"]["title"] for s in report[0]["similarProjects"]] == ["Smart Traffic Monitoring System"]

    def test_delayed_projects(self, db, faculty, make_project):
        late = make_project("Late Project", guide_id=faculty["_id"])
        on_time = make_project("On Time Project")
        db.milestones.insert_many([
            {"projectId": late["_id"], "title": "Overdue", "status": "pending", "dueDate": utcnow() - timedelta(days=3, hours=1)},
            {"projectId": late["_id"], "title": "Reviewed", "status": "approved", "dueDate": utcnow() - timedelta(days=10)},
            {"projectId": on_time["_id"], "title": "Upcoming", "status": "pending", "dueDate": utcnow() + timedelta(days=3)},
        ])

        delayed = analytics.delayed_projects(db)

        assert len(delayed) == 1
        assert delayed[0]["project"]["title"] == "Late Project"
        assert [(m["title"], m["daysDelayed"]) for m in delayed[0]["delayedMilestones"]] == [("Overdue", 3)]

    def test_delayed_projects_for_guide(self, db, faculty, make_user, make_project):
        project = make_project("Late Project", guide_id=faculty["_id"])
        db.milestones.insert_one(
            {"projectId": project["_id"], "title": "Overdue", "status": "submitted", "dueDate": utcnow() - timedelta(days=1)}
        )

        assert len(analytics.delayed_projects(db, guide_id=faculty["_id"])) == 1
        assert analytics.delayed_projects(db, guide_id=make_user(role="faculty")["_id"]) == []
