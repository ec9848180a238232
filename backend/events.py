# Domain Events
#
# Core services never create notifications or send email themselves. Each
# successful write records one of these events; the dispatcher delivers them
# after the response is built (see dispatcher.py / notifications.py).

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Recipient:
    """A user to notify; email is optional because not every event mails."""
    userId: str
    fullName: str = ""
    email: Optional[str] = None


def recipient_from_member(member: dict) -> Recipient:
    return Recipient(
        userId=member["studentId"],
        fullName=member.get("fullName", ""),
        email=member.get("email"),
    )


def recipients_from_members(members: List[dict]) -> List[Recipient]:
    return [recipient_from_member(m) for m in members]


@dataclass
class DomainEvent:
    occurredAt: datetime = field(default_factory=_now, init=False)


# --- Group events ---

@dataclass
class GroupCreated(DomainEvent):
    groupId: str = ""
    groupName: str = ""
    createdByName: str = ""
    addedMembers: List[Recipient] = field(default_factory=list)


@dataclass
class MemberAdded(DomainEvent):
    groupId: str = ""
    groupName: str = ""
    addedByName: str = ""
    member: Optional[Recipient] = None


@dataclass
class MemberRemoved(DomainEvent):
    groupId: str = ""
    groupName: str = ""
    member: Optional[Recipient] = None


@dataclass
class MemberLeft(DomainEvent):
    groupId: str = ""
    groupName: str = ""
    member: Optional[Recipient] = None
    leader: Optional[Recipient] = None


@dataclass
class GroupDeleted(DomainEvent):
    groupId: str = ""
    groupName: str = ""


@dataclass
class LeadershipTransferred(DomainEvent):
    groupId: str = ""
    groupName: str = ""
    previousLeader: Optional[Recipient] = None
    newLeader: Optional[Recipient] = None


@dataclass
class LeadershipRequested(DomainEvent):
    groupId: str = ""
    groupName: str = ""
    requester: Optional[Recipient] = None
    leader: Optional[Recipient] = None


# --- Project events ---

@dataclass
class ProjectSubmitted(DomainEvent):
    projectId: str = ""
    title: str = ""
    submittedByName: str = ""
    guideId: Optional[str] = None


@dataclass
class ProjectApproved(DomainEvent):
    projectId: str = ""
    title: str = ""
    members: List[Recipient] = field(default_factory=list)


@dataclass
class ProjectRejected(DomainEvent):
    projectId: str = ""
    title: str = ""
    reason: str = ""
    members: List[Recipient] = field(default_factory=list)


@dataclass
class ProjectStatusChanged(DomainEvent):
    projectId: str = ""
    title: str = ""
    previousStatus: str = ""
    status: str = ""
    members: List[Recipient] = field(default_factory=list)


@dataclass
class GuideAssigned(DomainEvent):
    projectId: str = ""
    title: str = ""
    guide: Optional[Recipient] = None
    previousGuideId: Optional[str] = None
    members: List[Recipient] = field(default_factory=list)


# --- Milestone events ---

@dataclass
class MilestoneCreated(DomainEvent):
    milestoneId: str = ""
    title: str = ""
    projectTitle: str = ""
    members: List[Recipient] = field(default_factory=list)


@dataclass
class MilestoneSubmitted(DomainEvent):
    milestoneId: str = ""
    title: str = ""
    projectTitle: str = ""
    guideId: Optional[str] = None


@dataclass
class FeedbackGiven(DomainEvent):
    milestoneId: str = ""
    milestoneTitle: str = ""
    members: List[Recipient] = field(default_factory=list)


# --- User events ---

@dataclass
class UserRegistered(DomainEvent):
    user: Optional[Recipient] = None
