# In-app Notifications
#
# Subscribers for the domain events in events.py. Each handler writes
# notification rows and, for a few events, sends an email. They run after
# the request has been answered, so a failure here never undoes the write
# that produced the event.

from typing import List, Optional

from pymongo.database import Database

import database
import errors
from database import stringify_id, to_object_id, utcnow
from dispatcher import EventDispatcher
from emailer import send_notification_email
from events import (
    FeedbackGiven,
    GroupCreated,
    GuideAssigned,
    LeadershipRequested,
    LeadershipTransferred,
    MemberAdded,
    MemberLeft,
    MemberRemoved,
    MilestoneCreated,
    MilestoneSubmitted,
    ProjectApproved,
    ProjectRejected,
    ProjectStatusChanged,
    ProjectSubmitted,
    Recipient,
    UserRegistered,
)
from logging_config import logger
from models import NotificationType


def create_notification(
    db: Database,
    user_id: Optional[str],
    message: str,
    type: NotificationType = NotificationType.INFO,
) -> Optional[str]:
    if not user_id:
        return None
    result = db.notifications.insert_one({
        "userId": user_id,
        "message": message,
        "type": type.value,
        "isRead": False,
        "createdAt": utcnow(),
    })
    return str(result.inserted_id)


def _notify_all(db: Database, recipients: List[Recipient], message: str, type: NotificationType) -> int:
    for recipient in recipients:
        create_notification(db, recipient.userId, message, type)
    return len(recipients)


# --- Group handlers ---

def on_group_created(event: GroupCreated) -> None:
    db = database.get_database()
    _notify_all(
        db, event.addedMembers,
        f'You have been added to group "{event.groupName}" by {event.createdByName}',
        NotificationType.INFO,
    )


def on_member_added(event: MemberAdded) -> None:
    if event.member:
        create_notification(
            database.get_database(), event.member.userId,
            f'You have been added to group "{event.groupName}" by {event.addedByName}',
            NotificationType.INFO,
        )


def on_member_removed(event: MemberRemoved) -> None:
    if event.member:
        create_notification(
            database.get_database(), event.member.userId,
            f'You have been removed from group "{event.groupName}"',
            NotificationType.WARNING,
        )


def on_member_left(event: MemberLeft) -> None:
    if event.leader and event.member:
        create_notification(
            database.get_database(), event.leader.userId,
            f'{event.member.fullName} has left your group "{event.groupName}"',
            NotificationType.INFO,
        )


def on_leadership_transferred(event: LeadershipTransferred) -> None:
    db = database.get_database()
    if event.newLeader:
        create_notification(
            db, event.newLeader.userId,
            f'You are now the leader of group "{event.groupName}"',
            NotificationType.SUCCESS,
        )
    if event.previousLeader and event.newLeader:
        create_notification(
            db, event.previousLeader.userId,
            f'You transferred leadership of "{event.groupName}" to {event.newLeader.fullName}',
            NotificationType.INFO,
        )


def on_leadership_requested(event: LeadershipRequested) -> None:
    if event.leader and event.requester:
        create_notification(
            database.get_database(), event.leader.userId,
            f'{event.requester.fullName} has requested leadership of group "{event.groupName}"',
            NotificationType.INFO,
        )


# --- Project handlers ---

def on_project_submitted(event: ProjectSubmitted) -> None:
    if event.guideId:
        create_notification(
            database.get_database(), event.guideId,
            f'New project proposal "{event.title}" submitted by {event.submittedByName}',
            NotificationType.INFO,
        )


async def on_project_approved(event: ProjectApproved) -> None:
    _notify_all(
        database.get_database(), event.members,
        f'Your project "{event.title}" has been approved!',
        NotificationType.SUCCESS,
    )
    for member in event.members:
        await send_notification_email(
            member.email, "proposal_approved",
            {"fullName": member.fullName, "projectTitle": event.title},
        )


async def on_project_rejected(event: ProjectRejected) -> None:
    _notify_all(
        database.get_database(), event.members,
        f'Your project "{event.title}" has been rejected. Reason: {event.reason}',
        NotificationType.WARNING,
    )
    for member in event.members:
        await send_notification_email(
            member.email, "proposal_rejected",
            {"fullName": member.fullName, "projectTitle": event.title, "reason": event.reason},
        )


def on_project_status_changed(event: ProjectStatusChanged) -> None:
    _notify_all(
        database.get_database(), event.members,
        f'Project "{event.title}" status updated to {event.status}',
        NotificationType.INFO,
    )


def on_guide_assigned(event: GuideAssigned) -> None:
    db = database.get_database()
    guide_name = event.guide.fullName if event.guide else ""
    if event.guide:
        create_notification(
            db, event.guide.userId,
            f'You have been assigned as guide for project "{event.title}"',
            NotificationType.INFO,
        )
    if event.previousGuideId:
        create_notification(
            db, event.previousGuideId,
            f'You have been unassigned from project "{event.title}"',
            NotificationType.WARNING,
        )
        message, type = f'Your project guide has been changed to {guide_name}', NotificationType.INFO
    else:
        message, type = f'{guide_name} has been assigned as your project guide', NotificationType.SUCCESS
    _notify_all(db, event.members, message, type)


# --- Milestone handlers ---

def on_milestone_created(event: MilestoneCreated) -> None:
    _notify_all(
        database.get_database(), event.members,
        f'New milestone "{event.title}" created for project "{event.projectTitle}"',
        NotificationType.INFO,
    )


def on_milestone_submitted(event: MilestoneSubmitted) -> None:
    if event.guideId:
        create_notification(
            database.get_database(), event.guideId,
            f'Milestone "{event.title}" submitted for project "{event.projectTitle}"',
            NotificationType.INFO,
        )


async def on_feedback_given(event: FeedbackGiven) -> None:
    _notify_all(
        database.get_database(), event.members,
        f'New feedback received for milestone "{event.milestoneTitle}"',
        NotificationType.SUCCESS,
    )
    for member in event.members:
        await send_notification_email(
            member.email, "feedback_received",
            {"fullName": member.fullName, "milestoneTitle": event.milestoneTitle},
        )


# --- User handlers ---

async def on_user_registered(event: UserRegistered) -> None:
    if event.user:
        await send_notification_email(event.user.email, "welcome", {"fullName": event.user.fullName})


HANDLERS = {
    GroupCreated: on_group_created,
    MemberAdded: on_member_added,
    MemberRemoved: on_member_removed,
    MemberLeft: on_member_left,
    LeadershipTransferred: on_leadership_transferred,
    LeadershipRequested: on_leadership_requested,
    ProjectSubmitted: on_project_submitted,
    ProjectApproved: on_project_approved,
    ProjectRejected: on_project_rejected,
    ProjectStatusChanged: on_project_status_changed,
    GuideAssigned: on_guide_assigned,
    MilestoneCreated: on_milestone_created,
    MilestoneSubmitted: on_milestone_submitted,
    FeedbackGiven: on_feedback_given,
    UserRegistered: on_user_registered,
}


def register_notification_handlers(dispatcher: EventDispatcher) -> EventDispatcher:
    for event_type, handler in HANDLERS.items():
        dispatcher.subscribe(event_type, handler)
    logger.info(f"[Notifications] Registered {len(HANDLERS)} event handlers")
    return dispatcher


class NotificationService:
    def __init__(self, db: Database):
        self.db = db

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
        query = {"userId": user_id}
        if unread_only:
            query["isRead"] = False
        cursor = self.db.notifications.find(query).sort("createdAt", -1).limit(limit)
        return [stringify_id(n) for n in cursor]

    def unread_count(self, user_id: str) -> int:
        return self.db.notifications.count_documents({"userId": user_id, "isRead": False})

    def mark_read(self, notification_id: str, user_id: str) -> dict:
        oid = to_object_id(notification_id, "notification ID")
        result = self.db.notifications.update_one(
            {"_id": oid, "userId": user_id},
            {"$set": {"isRead": True}}
        )
        if result.matched_count == 0:
            raise errors.NotFoundError("Notification", notification_id)
        return stringify_id(self.db.notifications.find_one({"_id": oid}))

    def mark_all_read(self, user_id: str) -> int:
        result = self.db.notifications.update_many(
            {"userId": user_id, "isRead": False},
            {"$set": {"isRead": True}}
        )
        return result.modified_count
