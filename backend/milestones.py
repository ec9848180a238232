# Milestones & Feedback

from typing import Dict, FrozenSet, List, Optional

from pymongo.database import Database

import errors
from database import as_utc, stringify_id, to_object_id, utcnow
from dispatcher import EventRecorder
from events import FeedbackGiven, MilestoneCreated, MilestoneSubmitted
from groups import find_member
from models import FeedbackCreate, MilestoneCreate, MilestoneStatus, MilestoneUpdate
from workflow import ensure_can_guide, load_group_of, load_project, project_members

MILESTONE_TRANSITIONS: Dict[MilestoneStatus, FrozenSet[MilestoneStatus]] = {
    MilestoneStatus.PENDING: frozenset({MilestoneStatus.SUBMITTED}),
    # resubmitting before review replaces the previous submission
    MilestoneStatus.SUBMITTED: frozenset({
        MilestoneStatus.SUBMITTED, MilestoneStatus.APPROVED, MilestoneStatus.NEEDS_REVISION,
    }),
    MilestoneStatus.NEEDS_REVISION: frozenset({MilestoneStatus.SUBMITTED}),
    MilestoneStatus.APPROVED: frozenset(),
}


def check_milestone_transition(current: str, target: MilestoneStatus) -> None:
    current_status = MilestoneStatus(current)
    if target not in MILESTONE_TRANSITIONS[current_status]:
        raise errors.ConflictError(
            f"Cannot move milestone from '{current_status.value}' to '{target.value}'",
            code="INVALID_TRANSITION",
            details={"from": current_status.value, "to": target.value}
        )


class MilestoneService(EventRecorder):
    def __init__(self, db: Database):
        super().__init__()
        self.db = db

    def _load(self, milestone_id: str) -> dict:
        milestone = self.db.milestones.find_one({"_id": to_object_id(milestone_id, "milestone ID")})
        if not milestone:
            raise errors.NotFoundError("Milestone", milestone_id)
        return milestone

    def _set_status(self, milestone: dict, target: MilestoneStatus, extra: Optional[dict] = None) -> dict:
        check_milestone_transition(milestone["status"], target)
        update = {"status": target.value, "updatedAt": utcnow()}
        if extra:
            update.update(extra)
        result = self.db.milestones.update_one(
            {"_id": milestone["_id"], "status": milestone["status"]},
            {"$set": update}
        )
        if result.matched_count == 0:
            raise errors.ConflictError(
                "Milestone was changed by another request. Please reload.",
                code="CONCURRENT_MODIFICATION"
            )
        return stringify_id(self.db.milestones.find_one({"_id": milestone["_id"]}))

    def create_milestone(self, project_id: str, requester: dict, payload: MilestoneCreate) -> dict:
        project = load_project(self.db, project_id)
        ensure_can_guide(requester, project, "create milestones for")

        now = utcnow()
        result = self.db.milestones.insert_one({
            "projectId": str(project["_id"]),
            "title": payload.title,
            "description": payload.description,
            "dueDate": as_utc(payload.dueDate),
            "status": MilestoneStatus.PENDING.value,
            "submissionDate": None,
            "submittedBy": None,
            "submissionText": None,
            "fileIds": [],
            "createdBy": requester["_id"],
            "createdAt": now,
            "updatedAt": now,
        })
        milestone = stringify_id(self.db.milestones.find_one({"_id": result.inserted_id}))

        self._emit(MilestoneCreated(
            milestoneId=milestone["_id"],
            title=milestone["title"],
            projectTitle=project["title"],
            members=project_members(self.db, project),
        ))
        return milestone

    def list_milestones(self, project_id: str) -> List[dict]:
        project = load_project(self.db, project_id)
        cursor = self.db.milestones.find({"projectId": str(project["_id"])}).sort("dueDate", 1)
        return [stringify_id(m) for m in cursor]

    def update_milestone(self, milestone_id: str, requester: dict, payload: MilestoneUpdate) -> dict:
        milestone = self._load(milestone_id)
        project = load_project(self.db, milestone["projectId"])
        ensure_can_guide(requester, project, "update milestones of")

        update_doc = payload.model_dump(exclude_unset=True, exclude_none=True)
        if not update_doc:
            raise errors.ValidationError("No update data provided")
        if "dueDate" in update_doc:
            update_doc["dueDate"] = as_utc(update_doc["dueDate"])
        update_doc["updatedAt"] = utcnow()

        self.db.milestones.update_one({"_id": milestone["_id"]}, {"$set": update_doc})
        return stringify_id(self.db.milestones.find_one({"_id": milestone["_id"]}))

    def submit_milestone(
        self,
        milestone_id: str,
        requester: dict,
        submission_text: Optional[str] = None,
        file_ids: Optional[List[str]] = None,
    ) -> dict:
        milestone = self._load(milestone_id)
        project = load_project(self.db, milestone["projectId"])

        group = load_group_of(self.db, project)
        if not group or not find_member(group, requester["_id"]):
            raise errors.AuthorizationError("Not authorized to submit this milestone")

        extra = {
            "submissionDate": utcnow(),
            "submittedBy": requester["_id"],
            "submissionText": submission_text,
        }
        if file_ids is not None:
            extra["fileIds"] = file_ids

        updated = self._set_status(milestone, MilestoneStatus.SUBMITTED, extra)
        self._emit(MilestoneSubmitted(
            milestoneId=updated["_id"],
            title=updated["title"],
            projectTitle=project["title"],
            guideId=project.get("guideId"),
        ))
        return updated

    def provide_feedback(self, milestone_id: str, requester: dict, payload: FeedbackCreate) -> dict:
        milestone = self._load(milestone_id)
        project = load_project(self.db, milestone["projectId"])
        ensure_can_guide(requester, project, "provide feedback for")

        # The status change is the conditional write, so it goes first
        if payload.status:
            self._set_status(milestone, MilestoneStatus(payload.status))

        result = self.db.feedback.insert_one({
            "milestoneId": str(milestone["_id"]),
            "givenBy": requester["_id"],
            "feedbackText": payload.feedbackText,
            "marks": payload.marks,
            "createdAt": utcnow(),
        })

        self._emit(FeedbackGiven(
            milestoneId=str(milestone["_id"]),
            milestoneTitle=milestone["title"],
            members=project_members(self.db, project),
        ))
        return stringify_id(self.db.feedback.find_one({"_id": result.inserted_id}))

    def list_feedback(self, milestone_id: str) -> List[dict]:
        milestone = self._load(milestone_id)
        cursor = self.db.feedback.find({"milestoneId": str(milestone["_id"])}).sort("createdAt", -1)
        return [stringify_id(f) for f in cursor]
