# Guide Allocation

from typing import List

from pymongo.database import Database

import errors
from database import stringify_id, utcnow
from dispatcher import EventRecorder
from events import GuideAssigned, Recipient
from models import ProjectStatus, Role
from users import UserDirectory
from workflow import load_project, project_members

ACTIVE_STATUSES = [ProjectStatus.APPROVED.value, ProjectStatus.IN_PROGRESS.value]


class AllocationService(EventRecorder):
    def __init__(self, db: Database):
        super().__init__()
        self.db = db
        self.directory = UserDirectory(db)

    def _load_guide(self, guide_id: str) -> dict:
        guide = self.directory.find_by_id(guide_id)
        if not guide or guide.get("role") != Role.FACULTY.value:
            raise errors.NotFoundError("Guide", guide_id, message="Guide not found")
        return guide

    def active_project_count(self, guide_id: str) -> int:
        return self.db.projects.count_documents({"guideId": guide_id, "status": {"$in": ACTIVE_STATUSES}})

    def list_guides(self) -> List[dict]:
        """Verified faculty, least loaded first."""
        guides = []
        for guide in self.db.users.find({"role": Role.FACULTY.value, "isVerified": True}):
            guide_id = str(guide["_id"])
            guides.append({
                "id": guide_id,
                "fullName": guide.get("fullName", ""),
                "email": guide.get("email", ""),
                "department": guide.get("department"),
                "projectCount": self.active_project_count(guide_id),
            })
        guides.sort(key=lambda g: (g["projectCount"], g["fullName"]))
        return guides

    def assign_guide(self, project_id: str, guide_id: str) -> dict:
        project = load_project(self.db, project_id)
        guide = self._load_guide(guide_id)
        previous_guide_id = project.get("guideId")

        self.db.projects.update_one(
            {"_id": project["_id"]},
            {"$set": {"guideId": guide["_id"], "updatedAt": utcnow()}}
        )
        updated = stringify_id(self.db.projects.find_one({"_id": project["_id"]}))

        self._emit(GuideAssigned(
            projectId=updated["_id"],
            title=updated["title"],
            guide=Recipient(userId=guide["_id"], fullName=guide.get("fullName", ""), email=guide.get("email")),
            previousGuideId=previous_guide_id if previous_guide_id != guide["_id"] else None,
            members=project_members(self.db, updated),
        ))
        return updated

    def guide_workload(self, guide_id: str) -> dict:
        guide = self._load_guide(guide_id)
        projects = [stringify_id(p) for p in self.db.projects.find({"guideId": guide["_id"]}).sort("createdAt", -1)]

        def count(status: ProjectStatus) -> int:
            return sum(1 for p in projects if p.get("status") == status.value)

        return {
            "guide": {
                "id": guide["_id"],
                "fullName": guide.get("fullName", ""),
                "email": guide.get("email", ""),
                "department": guide.get("department"),
            },
            "stats": {
                "total": len(projects),
                "proposed": count(ProjectStatus.PROPOSED),
                "approved": count(ProjectStatus.APPROVED),
                "inProgress": count(ProjectStatus.IN_PROGRESS),
                "completed": count(ProjectStatus.COMPLETED),
            },
            "projects": projects,
        }
