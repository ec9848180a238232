# Project Workflow

from typing import Dict, FrozenSet, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database

import errors
from database import stringify_id, to_object_id, utcnow
from dispatcher import EventRecorder
from duplicates import DuplicateDetector
from events import (
    ProjectApproved,
    ProjectRejected,
    ProjectStatusChanged,
    ProjectSubmitted,
    Recipient,
    recipients_from_members,
)
from groups import MembershipStore, find_member
from logging_config import logger
from models import (
    DuplicateCheckResult,
    MemberRole,
    ProjectCreate,
    ProjectStatus,
    ProjectUpdate,
    Role,
)
from users import UserDirectory, is_admin

DEFAULT_REJECTION_REASON = "No reason provided"

# Exhaustive: anything not listed here is refused.
TRANSITIONS: Dict[ProjectStatus, FrozenSet[ProjectStatus]] = {
    ProjectStatus.PROPOSED: frozenset({ProjectStatus.APPROVED, ProjectStatus.REJECTED}),
    ProjectStatus.APPROVED: frozenset({ProjectStatus.IN_PROGRESS}),
    ProjectStatus.IN_PROGRESS: frozenset({ProjectStatus.COMPLETED}),
    ProjectStatus.COMPLETED: frozenset(),
    ProjectStatus.REJECTED: frozenset(),
}


def can_transition(current: ProjectStatus, target: ProjectStatus) -> bool:
    return target in TRANSITIONS[current]


def can_guide(requester: dict, project: dict) -> bool:
    """
    The one authorization rule for guide-restricted actions (approve, reject,
    status changes, milestones, feedback): admins always, faculty only on
    projects they guide.
    """
    if is_admin(requester):
        return True
    return (
        requester.get("role") == Role.FACULTY.value
        and project.get("guideId") is not None
        and project.get("guideId") == requester.get("_id")
    )


def ensure_can_guide(requester: dict, project: dict, action: str) -> None:
    if not can_guide(requester, project):
        raise errors.AuthorizationError(f"Not authorized to {action} this project")


def load_project(db: Database, project_id: str) -> dict:
    project = db.projects.find_one({"_id": to_object_id(project_id, "project ID")})
    if not project:
        raise errors.NotFoundError("Project", project_id)
    return project


def load_group_of(db: Database, project: dict) -> Optional[dict]:
    group_id = project.get("groupId")
    if not group_id or not ObjectId.is_valid(group_id):
        return None
    return db.groups.find_one({"_id": ObjectId(group_id)})


def project_members(db: Database, project: dict) -> List[Recipient]:
    group = load_group_of(db, project)
    return recipients_from_members(group.get("members", [])) if group else []


class ProjectWorkflow(EventRecorder):
    """Owns the project status machine and its authorization gating."""

    def __init__(self, db: Database, detector: Optional[DuplicateDetector] = None):
        super().__init__()
        self.db = db
        self.detector = detector or DuplicateDetector(db)
        self.directory = UserDirectory(db)
        self.memberships = MembershipStore(db)

    # --- creation ---

    def _resolve_group(self, requester: dict, group_id: Optional[str]) -> dict:
        if not group_id:
            group_id = self.memberships.group_of(requester["_id"])
            if not group_id:
                raise errors.ValidationError("Group ID is required")

        group = self.db.groups.find_one({"_id": to_object_id(group_id, "group ID")})
        if not group:
            raise errors.NotFoundError("Group", group_id)

        if not is_admin(requester):
            member = find_member(group, requester["_id"])
            if not member:
                raise errors.AuthorizationError("You are not a member of this group")
            if member.get("role") != MemberRole.LEADER.value:
                raise errors.AuthorizationError("Only the group leader can submit a project proposal")
        return group

    def create_project(self, requester: dict, payload: ProjectCreate) -> Tuple[dict, DuplicateCheckResult]:
        group = self._resolve_group(requester, payload.groupId)

        if payload.guideId:
            guide = self.directory.find_by_id(payload.guideId)
            if not guide or guide.get("role") != Role.FACULTY.value:
                raise errors.NotFoundError("Guide", payload.guideId, message="Guide not found")

        # Warning only: the proposal is stored whatever the outcome
        duplicate_check = self.detector.detect(payload.title, payload.description)

        now = utcnow()
        project_doc = {
            "title": payload.title,
            "description": payload.description,
            "groupId": str(group["_id"]),
            "submittedBy": requester["_id"],
            "guideId": payload.guideId or None,
            "projectType": payload.projectType.value,
            "status": ProjectStatus.PROPOSED.value,
            "technologyStack": payload.technologyStack,
            "objectives": payload.objectives,
            "expectedOutcomes": payload.expectedOutcomes,
            "academicYear": payload.academicYear,
            "semester": payload.semester,
            "rejectionReason": None,
            "proposalFileId": None,
            "submissionDate": now,
            "approvalDate": None,
            "createdAt": now,
            "updatedAt": now,
        }
        result = self.db.projects.insert_one(project_doc)
        project = stringify_id(self.db.projects.find_one({"_id": result.inserted_id}))

        if duplicate_check.isDuplicate:
            logger.info(
                f"[Projects] Proposal {project['_id']} resembles "
                f"{len(duplicate_check.similarProjects)} existing project(s)"
            )

        self._emit(ProjectSubmitted(
            projectId=project["_id"],
            title=project["title"],
            submittedByName=requester.get("fullName", ""),
            guideId=project.get("guideId"),
        ))
        return project, duplicate_check

    def attach_proposal(self, project_id: str, file_id: str) -> dict:
        project_oid = to_object_id(project_id, "project ID")
        self.db.projects.update_one(
            {"_id": project_oid},
            {"$set": {"proposalFileId": file_id, "updatedAt": utcnow()}}
        )
        return stringify_id(self.db.projects.find_one({"_id": project_oid}))

    # --- status machine ---

    def _transition(self, project: dict, target: ProjectStatus, extra: Optional[dict] = None) -> dict:
        current = ProjectStatus(project["status"])
        if not can_transition(current, target):
            raise errors.ConflictError(
                f"Cannot move project from '{current.value}' to '{target.value}'",
                code="INVALID_TRANSITION",
                details={"from": current.value, "to": target.value}
            )

        update = {"status": target.value, "updatedAt": utcnow()}
        if extra:
            update.update(extra)

        # Conditioned on the status we validated against
        result = self.db.projects.update_one(
            {"_id": project["_id"], "status": current.value},
            {"$set": update}
        )
        if result.matched_count == 0:
            raise errors.ConflictError(
                "Project status was changed by another request. Please reload.",
                code="CONCURRENT_MODIFICATION"
            )
        logger.info(f"[Projects] {project['_id']}: {current.value} -> {target.value}")
        return stringify_id(self.db.projects.find_one({"_id": project["_id"]}))

    def approve(self, project_id: str, requester: dict) -> dict:
        project = load_project(self.db, project_id)
        ensure_can_guide(requester, project, "approve")

        updated = self._transition(project, ProjectStatus.APPROVED, {"approvalDate": utcnow()})
        self._emit(ProjectApproved(
            projectId=updated["_id"],
            title=updated["title"],
            members=project_members(self.db, updated),
        ))
        return updated

    def reject(self, project_id: str, requester: dict, reason: Optional[str] = None) -> dict:
        project = load_project(self.db, project_id)
        ensure_can_guide(requester, project, "reject")

        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        updated = self._transition(project, ProjectStatus.REJECTED, {"rejectionReason": reason})
        self._emit(ProjectRejected(
            projectId=updated["_id"],
            title=updated["title"],
            reason=reason,
            members=project_members(self.db, updated),
        ))
        return updated

    def change_status(self, project_id: str, requester: dict, target: ProjectStatus) -> dict:
        if target == ProjectStatus.APPROVED:
            return self.approve(project_id, requester)
        if target == ProjectStatus.REJECTED:
            return self.reject(project_id, requester)

        project = load_project(self.db, project_id)
        ensure_can_guide(requester, project, "update the status of")

        previous = project["status"]
        updated = self._transition(project, target)
        self._emit(ProjectStatusChanged(
            projectId=updated["_id"],
            title=updated["title"],
            previousStatus=previous,
            status=updated["status"],
            members=project_members(self.db, updated),
        ))
        return updated

    # --- queries & descriptive edits ---

    def _can_view(self, requester: dict, project: dict) -> bool:
        if is_admin(requester) or requester.get("role") == Role.FACULTY.value:
            return True
        group = load_group_of(self.db, project)
        return bool(group and find_member(group, requester["_id"]))

    def get_project(self, project_id: str, requester: dict) -> dict:
        project = load_project(self.db, project_id)
        if not self._can_view(requester, project):
            raise errors.AuthorizationError("You don't have access to this project")
        return stringify_id(project)

    def list_projects(self, requester: dict, filters: Optional[dict] = None) -> List[dict]:
        query = {k: v for k, v in (filters or {}).items() if v}

        role = requester.get("role")
        if role == Role.STUDENT.value:
            groups = self.db.groups.find({"members.studentId": requester["_id"]}, {"_id": 1})
            query["groupId"] = {"$in": [str(g["_id"]) for g in groups]}
        elif role == Role.FACULTY.value:
            query["guideId"] = requester["_id"]

        return [stringify_id(p) for p in self.db.projects.find(query).sort("createdAt", -1)]

    def update_project(self, project_id: str, requester: dict, update: ProjectUpdate) -> dict:
        project = load_project(self.db, project_id)

        if requester.get("role") == Role.STUDENT.value:
            group = load_group_of(self.db, project)
            if not group or not find_member(group, requester["_id"]):
                raise errors.AuthorizationError("Not authorized to update this project")
        elif not can_guide(requester, project):
            raise errors.AuthorizationError("Not authorized to update this project")

        update_doc = update.model_dump(exclude_unset=True, exclude_none=True)
        if not update_doc:
            raise errors.ValidationError("No update data provided")
        update_doc["updatedAt"] = utcnow()

        self.db.projects.update_one({"_id": project["_id"]}, {"$set": update_doc})
        return stringify_id(self.db.projects.find_one({"_id": project["_id"]}))

    def delete_project(self, project_id: str) -> None:
        project = load_project(self.db, project_id)

        milestone_ids = [str(m["_id"]) for m in self.db.milestones.find({"projectId": str(project["_id"])}, {"_id": 1})]
        if milestone_ids:
            self.db.feedback.delete_many({"milestoneId": {"$in": milestone_ids}})
        self.db.milestones.delete_many({"projectId": str(project["_id"])})
        self.db.projects.delete_one({"_id": project["_id"]})
        logger.info(f"[Projects] Deleted project {project['_id']} and {len(milestone_ids)} milestone(s)")
