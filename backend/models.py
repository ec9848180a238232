# Data Models

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

import errors


class Role(str, Enum):
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class MemberRole(str, Enum):
    LEADER = "leader"
    MEMBER = "member"


class ProjectType(str, Enum):
    MINOR = "minor"
    MAJOR = "major"


class ProjectStatus(str, Enum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"


class MongoModel(BaseModel):
    """Maps MongoDB's _id to an `id` field (stringified by the caller)."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str = Field(..., alias="_id")


# ============================================
# USER MODELS
# ============================================

class UserBase(BaseModel):
    fullName: str = Field(..., min_length=3)
    email: EmailStr
    department: Optional[str] = None


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)
    role: Role
    phone: Optional[str] = None


class UserPublic(MongoModel):
    """User model without sensitive info"""
    fullName: str
    email: EmailStr
    role: Role
    department: Optional[str] = None
    phone: Optional[str] = None
    isVerified: bool = False
    createdAt: datetime


class UserUpdate(BaseModel):
    """Profile update. Role and password are deliberately absent."""
    fullName: Optional[str] = Field(None, min_length=3)
    department: Optional[str] = None
    phone: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    exp: Optional[datetime] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# ============================================
# GROUP MODELS
# ============================================

class GroupMember(BaseModel):
    studentId: str
    fullName: str
    email: str
    role: MemberRole = MemberRole.MEMBER


class GroupCreate(BaseModel):
    groupName: str = Field(..., min_length=1, max_length=100)
    memberIds: List[str] = []

    @field_validator("groupName")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Group name is required")
        return v


class GroupPublic(MongoModel):
    groupName: str
    members: List[GroupMember]
    createdBy: str
    createdAt: datetime
    updatedAt: Optional[datetime] = None


class StudentLookup(BaseModel):
    """Resolves a student either by id or by email, never both."""
    by: Literal["id", "email"]
    value: str


class AddMemberRequest(BaseModel):
    studentId: Optional[str] = None
    email: Optional[EmailStr] = None

    def to_lookup(self) -> StudentLookup:
        if self.studentId:
            return StudentLookup(by="id", value=self.studentId)
        if self.email:
            return StudentLookup(by="email", value=self.email.lower())
        raise errors.ValidationError("Student ID or email is required")


class RemoveMemberRequest(BaseModel):
    studentId: str


class TransferLeaderRequest(BaseModel):
    newLeaderId: str


class RenameGroupRequest(BaseModel):
    groupName: str = Field(..., min_length=1, max_length=100)


class GroupRemovalResult(BaseModel):
    message: str
    groupDeleted: bool
    group: Optional[GroupPublic] = None


# ============================================
# PROJECT MODELS
# ============================================

class ProjectCreate(BaseModel):
    """Proposal payload (built from the multipart form in main.py)"""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    groupId: Optional[str] = None
    projectType: ProjectType
    technologyStack: List[str] = []
    objectives: str = Field(..., min_length=1)
    expectedOutcomes: Optional[str] = None
    academicYear: str = Field(..., min_length=1)
    semester: str = Field(..., min_length=1)
    guideId: Optional[str] = None

    @field_validator("projectType", mode="before")
    @classmethod
    def lower_project_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("technologyStack", mode="before")
    @classmethod
    def split_stack(cls, v: Any) -> Any:
        # The form sends "React, FastAPI"; JSON callers may send a list
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]

    @field_validator("title", "description", "objectives", "academicYear", "semester")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v


class ProjectUpdate(BaseModel):
    """Descriptive fields only: status moves through the workflow endpoints."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    technologyStack: Optional[List[str]] = None
    objectives: Optional[str] = None
    expectedOutcomes: Optional[str] = None
    academicYear: Optional[str] = None
    semester: Optional[str] = None


class ProjectPublic(MongoModel):
    title: str
    description: str
    groupId: str
    submittedBy: Optional[str] = None
    guideId: Optional[str] = None
    projectType: ProjectType
    status: ProjectStatus
    technologyStack: List[str] = []
    objectives: str
    expectedOutcomes: Optional[str] = None
    academicYear: str
    semester: str
    rejectionReason: Optional[str] = None
    proposalFileId: Optional[str] = None
    submissionDate: Optional[datetime] = None
    approvalDate: Optional[datetime] = None
    createdAt: datetime
    updatedAt: Optional[datetime] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class StatusChangeRequest(BaseModel):
    status: ProjectStatus


class SimilarProjectSummary(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    groupName: Optional[str] = None
    status: Optional[str] = None


class SimilarProject(BaseModel):
    project: SimilarProjectSummary
    similarity: int


class DuplicateCheckResult(BaseModel):
    isDuplicate: bool
    similarProjects: List[SimilarProject] = []
    allSimilar: List[SimilarProject] = []


class DuplicateWarning(BaseModel):
    message: str = "Similar projects found"
    similarProjects: List[SimilarProject]


class ProjectCreateResponse(BaseModel):
    project: ProjectPublic
    duplicateWarning: Optional[DuplicateWarning] = None


# ============================================
# MILESTONE & FEEDBACK MODELS
# ============================================

class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    dueDate: datetime


class MilestoneUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    dueDate: Optional[datetime] = None


class MilestoneSubmit(BaseModel):
    submissionText: Optional[str] = None
    fileIds: Optional[List[str]] = None


class MilestonePublic(MongoModel):
    projectId: str
    title: str
    description: str
    dueDate: datetime
    status: MilestoneStatus
    submissionDate: Optional[datetime] = None
    submittedBy: Optional[str] = None
    submissionText: Optional[str] = None
    fileIds: List[str] = []
    createdBy: str
    createdAt: datetime
    updatedAt: Optional[datetime] = None


class FeedbackCreate(BaseModel):
    feedbackText: str = Field(..., min_length=1)
    marks: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[Literal["approved", "needs_revision"]] = None


class FeedbackPublic(MongoModel):
    milestoneId: str
    givenBy: str
    feedbackText: str
    marks: Optional[int] = None
    createdAt: datetime


# ============================================
# NOTIFICATION, FILE & ALLOCATION MODELS
# ============================================

class NotificationPublic(MongoModel):
    userId: str
    message: str
    type: NotificationType
    isRead: bool = False
    createdAt: datetime


class FilePublic(MongoModel):
    fileName: str
    fileType: Optional[str] = None
    fileSize: int
    uploadedBy: str
    projectId: Optional[str] = None
    milestoneId: Optional[str] = None
    createdAt: datetime


class AssignGuideRequest(BaseModel):
    projectId: str
    guideId: str


class ReassignGuideRequest(BaseModel):
    guideId: str


class GuideSummary(BaseModel):
    id: str
    fullName: str
    email: str
    department: Optional[str] = None
    projectCount: int


class MessageResponse(BaseModel):
    message: str
    data: Optional[Dict[str, Any]] = None
