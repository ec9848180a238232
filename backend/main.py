# ProjectTrack API

import os
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError

import analytics
import auth
import database
import errors
import models
from allocations import AllocationService
from database import stringify_id, utcnow
from dispatcher import EventDispatcher, EventRecorder
from events import Recipient, UserRegistered
from groups import GroupService, MembershipStore
from logging_config import logger
from milestones import MilestoneService
from notifications import NotificationService, register_notification_handlers
from uploads import FileStore
from users import UserDirectory, is_admin
from workflow import ProjectWorkflow

load_dotenv()

# --- App Initialization ---
app = FastAPI(title="ProjectTrack Backend")

# --- CORS Middleware ---
# Comma separated list, e.g. "http://localhost:3000,https://projecttrack.example.edu"
origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Side effects (notifications, email) ---
dispatcher = register_notification_handlers(EventDispatcher())


def schedule_events(background_tasks: BackgroundTasks, *services: EventRecorder) -> None:
    """Hands the events recorded during this request to the dispatcher, after the response."""
    events = [event for service in services for event in service.drain_events()]
    if events:
        background_tasks.add_task(dispatcher.dispatch, events)


# --- Database Connection Lifecycle ---
@app.on_event("startup")
def startup_db_client():
    try:
        database.connect_to_mongo()
        database.create_admin_user()
        MembershipStore(database.get_database()).release_orphans()
    except ConnectionFailure as e:
        logger.critical(f"Could not connect to MongoDB on startup. {e}")
    except Exception as e:
        logger.critical(f"Error during startup: {e!r}")


@app.on_event("shutdown")
def shutdown_db_client():
    database.close_mongo_connection()


# --- Error mapping ---
@app.exception_handler(errors.ProjectTrackError)
async def domain_error_handler(request: Request, exc: errors.ProjectTrackError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(ConnectionFailure)
async def database_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error(f"{request.method} {request.url.path}: database unavailable ({exc})")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database unavailable", "code": "DATABASE_UNAVAILABLE"},
    )


# --- Dependencies ---
def get_db() -> Database:
    # raises ConnectionFailure if not connected
    return database.get_database()


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db)
) -> dict:
    """Extract and verify JWT token, return current user from database"""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Extract token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = auth.verify_token(parts[1])
    if not token_data or not token_data.email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.users.find_one({"email": token_data.email.lower()})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return stringify_id(user)


def get_current_admin_user(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency to check if the current user is an admin."""
    if not is_admin(current_user):
        raise errors.AuthorizationError("Access forbidden: Requires admin privileges")
    return current_user


def get_current_staff_user(current_user: dict = Depends(get_current_user)) -> dict:
    """Admins and faculty."""
    if current_user.get("role") not in (models.Role.ADMIN.value, models.Role.FACULTY.value):
        raise errors.AuthorizationError("Access forbidden: Requires faculty or admin privileges")
    return current_user


# --- API Endpoints ---

@app.get("/")
async def read_root():
    return {"message": "Welcome to ProjectTrack Backend"}


@app.get("/health")
async def health_check():
    try:
        database.get_database().command("ping")
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check: database ping failed ({e!r})")
        db_status = "disconnected"
    return {"status": "ok", "database": db_status, "timestamp": utcnow()}


# ============================================
# AUTH & USERS
# ============================================

@app.post("/signup", response_model=models.UserPublic, status_code=status.HTTP_201_CREATED)
async def signup_user(
    user_data: models.UserCreate,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db)
):
    """Registers a new student or faculty account. Faculty wait for admin verification."""
    if user_data.role == models.Role.ADMIN:
        raise errors.AuthorizationError("Admin accounts cannot be self-registered")

    email = user_data.email.lower()
    if db.users.find_one({"email": email}):
        raise errors.ConflictError("User with this email already exists", code="EMAIL_TAKEN")

    user_doc = {
        "fullName": user_data.fullName.strip(),
        "email": email,
        "hashedPassword": auth.get_password_hash(user_data.password),
        "role": user_data.role.value,
        "department": user_data.department,
        "phone": user_data.phone,
        "isVerified": user_data.role == models.Role.STUDENT,
        "createdAt": utcnow(),
    }
    try:
        result = db.users.insert_one(user_doc)
    except DuplicateKeyError:
        raise errors.ConflictError("User with this email already exists", code="EMAIL_TAKEN")

    created = stringify_id(db.users.find_one({"_id": result.inserted_id}))
    logger.info(f"[Auth] Registered {created['role']} {email}")

    background_tasks.add_task(
        dispatcher.dispatch,
        [UserRegistered(user=Recipient(userId=created["_id"], fullName=created["fullName"], email=email))],
    )
    return created


@app.post("/login", response_model=models.Token)
async def login_for_access_token(form_data: models.LoginRequest, db: Database = Depends(get_db)):
    """Authenticates a user and returns a JWT token."""
    user = db.users.find_one({"email": form_data.email.lower()})

    if not user or not auth.verify_password(form_data.password, user.get("hashedPassword")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.get("isVerified"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not verified. Please wait for admin approval.",
        )

    access_token = auth.create_access_token(
        data={"sub": user["email"], "role": user.get("role")},
        expires_delta=timedelta(minutes=auth.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/users/me", response_model=models.UserPublic)
async def get_current_user_details(current_user: dict = Depends(get_current_user)):
    return current_user


@app.get("/users/{user_id}", response_model=models.UserPublic)
async def get_user(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return UserDirectory(db).get(user_id)


@app.put("/users/{user_id}", response_model=models.UserPublic)
async def update_user(
    user_id: str,
    update: models.UserUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Profile edit for yourself (or anyone, as admin). Role is not accepted."""
    return UserDirectory(db).update_profile(user_id, current_user, update)


@app.get("/users/{user_id}/groups", response_model=List[models.GroupPublic])
async def get_user_groups(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    if not is_admin(current_user) and current_user["_id"] != user_id:
        raise errors.AuthorizationError("Not authorized to view this user's groups")
    return GroupService(db).list_groups_for_user(user_id)


@app.get("/api/admin/users", response_model=List[models.UserPublic])
async def get_all_users(
    role: Optional[models.Role] = Query(None),
    is_verified: Optional[bool] = Query(None, alias="isVerified"),
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    """Fetches all users, optionally filtered by role and verification."""
    return UserDirectory(db).list_users(role.value if role else None, is_verified)


@app.put("/api/admin/users/{user_id}/verify", response_model=models.UserPublic)
async def verify_user(
    user_id: str,
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    verified = UserDirectory(db).verify(user_id)
    logger.info(f"[Admin] {admin_user['email']} verified {verified['email']}")
    return verified


# ============================================
# GROUPS
# ============================================

@app.post("/groups", response_model=models.GroupPublic, status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: models.GroupCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = GroupService(db)
    group = service.create_group(current_user, payload.groupName, payload.memberIds)
    schedule_events(background_tasks, service)
    return group


@app.get("/groups/{group_id}", response_model=models.GroupPublic)
async def get_group(
    group_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return GroupService(db).get_group(group_id, current_user)


@app.put("/groups/{group_id}", response_model=models.GroupPublic)
async def rename_group(
    group_id: str,
    payload: models.RenameGroupRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return GroupService(db).rename_group(group_id, current_user, payload.groupName)


@app.post("/groups/{group_id}/add-member", response_model=models.GroupPublic)
async def add_group_member(
    group_id: str,
    payload: models.AddMemberRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = GroupService(db)
    group = service.add_member(group_id, current_user, payload.to_lookup())
    schedule_events(background_tasks, service)
    return group


@app.post("/groups/{group_id}/remove-member", response_model=models.GroupRemovalResult)
async def remove_group_member(
    group_id: str,
    payload: models.RemoveMemberRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = GroupService(db)
    group = service.remove_member(group_id, current_user, payload.studentId)
    schedule_events(background_tasks, service)
    if group is None:
        return {"message": "Member removed. Group deleted as it has no members left.", "groupDeleted": True}
    return {"message": "Member removed successfully", "groupDeleted": False, "group": group}


@app.post("/groups/{group_id}/leave", response_model=models.GroupRemovalResult)
async def leave_group(
    group_id: str,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = GroupService(db)
    group = service.leave_group(group_id, current_user)
    schedule_events(background_tasks, service)
    if group is None:
        return {"message": "You left the group. Group deleted as it has no members left.", "groupDeleted": True}
    return {"message": "You have left the group", "groupDeleted": False, "group": group}


@app.patch("/groups/{group_id}/transfer-leader", response_model=models.GroupPublic)
async def transfer_group_leadership(
    group_id: str,
    payload: models.TransferLeaderRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = GroupService(db)
    group = service.transfer_leadership(group_id, current_user, payload.newLeaderId)
    schedule_events(background_tasks, service)
    return group


@app.post("/groups/{group_id}/request-transfer", response_model=models.MessageResponse)
async def request_leadership_transfer(
    group_id: str,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = GroupService(db)
    service.request_leadership_transfer(group_id, current_user)
    schedule_events(background_tasks, service)
    return {"message": "Leadership transfer request sent to the group leader"}


# ============================================
# PROJECTS
# ============================================

@app.post("/projects", response_model=models.ProjectCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    background_tasks: BackgroundTasks,
    title: str = Form(...),
    description: str = Form(...),
    projectType: str = Form(...),
    objectives: str = Form(...),
    academicYear: str = Form(...),
    semester: str = Form(...),
    groupId: Optional[str] = Form(None),
    technologyStack: Optional[str] = Form(None),
    expectedOutcomes: Optional[str] = Form(None),
    guideId: Optional[str] = Form(None),
    proposalDocument: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Submits a proposal (multipart form, optional proposal document). Similar titles only warn."""
    try:
        payload = models.ProjectCreate(
            title=title,
            description=description,
            projectType=projectType,
            objectives=objectives,
            academicYear=academicYear,
            semester=semester,
            groupId=groupId or None,
            technologyStack=technologyStack,
            expectedOutcomes=expectedOutcomes,
            guideId=guideId or None,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise errors.ValidationError(
            f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid project data"),
            details={"fields": [".".join(str(p) for p in err.get("loc", ())) for err in e.errors()]}
        )

    store = FileStore(db)
    content = None
    if proposalDocument is not None and proposalDocument.filename:
        # Validated before anything is persisted
        content = await store.read(proposalDocument)

    workflow = ProjectWorkflow(db)
    project, duplicate_check = workflow.create_project(current_user, payload)

    if content is not None:
        record = store.save(
            proposalDocument.filename,
            content,
            proposalDocument.content_type,
            "proposals",
            current_user["_id"],
            project_id=project["_id"],
        )
        project = workflow.attach_proposal(project["_id"], record["_id"])

    schedule_events(background_tasks, workflow)

    warning = None
    if duplicate_check.isDuplicate:
        warning = models.DuplicateWarning(similarProjects=duplicate_check.similarProjects)
    return {"project": project, "duplicateWarning": warning}


@app.get("/projects", response_model=List[models.ProjectPublic])
async def list_projects(
    status_filter: Optional[models.ProjectStatus] = Query(None, alias="status"),
    project_type: Optional[models.ProjectType] = Query(None, alias="projectType"),
    academic_year: Optional[str] = Query(None, alias="academicYear"),
    semester: Optional[str] = Query(None),
    guide_id: Optional[str] = Query(None, alias="guideId"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    """Students see their group's projects, faculty the ones they guide, admins everything."""
    filters = {
        "status": status_filter.value if status_filter else None,
        "projectType": project_type.value if project_type else None,
        "academicYear": academic_year,
        "semester": semester,
        "guideId": guide_id,
    }
    return ProjectWorkflow(db).list_projects(current_user, filters)


@app.get("/projects/duplicates", response_model=models.DuplicateCheckResult)
async def check_duplicates(
    title: str = Query(...),
    description: Optional[str] = Query(None),
    exclude_id: Optional[str] = Query(None, alias="excludeId"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return ProjectWorkflow(db).detector.detect(title, description, exclude_id)


@app.get("/projects/{project_id}", response_model=models.ProjectPublic)
async def get_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return ProjectWorkflow(db).get_project(project_id, current_user)


@app.put("/projects/{project_id}", response_model=models.ProjectPublic)
async def update_project(
    project_id: str,
    update: models.ProjectUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return ProjectWorkflow(db).update_project(project_id, current_user, update)


@app.delete("/projects/{project_id}", response_model=models.MessageResponse)
async def delete_project(
    project_id: str,
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    ProjectWorkflow(db).delete_project(project_id)
    return {"message": "Project deleted successfully"}


@app.post("/projects/{project_id}/approve", response_model=models.ProjectPublic)
async def approve_project(
    project_id: str,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    workflow = ProjectWorkflow(db)
    project = workflow.approve(project_id, current_user)
    schedule_events(background_tasks, workflow)
    return project


@app.post("/projects/{project_id}/reject", response_model=models.ProjectPublic)
async def reject_project(
    project_id: str,
    background_tasks: BackgroundTasks,
    payload: Optional[models.RejectRequest] = None,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    workflow = ProjectWorkflow(db)
    project = workflow.reject(project_id, current_user, payload.reason if payload else None)
    schedule_events(background_tasks, workflow)
    return project


@app.patch("/projects/{project_id}/status", response_model=models.ProjectPublic)
async def change_project_status(
    project_id: str,
    payload: models.StatusChangeRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    workflow = ProjectWorkflow(db)
    project = workflow.change_status(project_id, current_user, payload.status)
    schedule_events(background_tasks, workflow)
    return project


# ============================================
# MILESTONES & FEEDBACK
# ============================================

@app.get("/projects/{project_id}/milestones", response_model=List[models.MilestonePublic])
async def list_project_milestones(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    ProjectWorkflow(db).get_project(project_id, current_user)  # access check
    return MilestoneService(db).list_milestones(project_id)


@app.post(
    "/projects/{project_id}/milestones",
    response_model=models.MilestonePublic,
    status_code=status.HTTP_201_CREATED
)
async def create_milestone(
    project_id: str,
    payload: models.MilestoneCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = MilestoneService(db)
    milestone = service.create_milestone(project_id, current_user, payload)
    schedule_events(background_tasks, service)
    return milestone


@app.put("/milestones/{milestone_id}", response_model=models.MilestonePublic)
async def update_milestone(
    milestone_id: str,
    payload: models.MilestoneUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return MilestoneService(db).update_milestone(milestone_id, current_user, payload)


@app.post("/milestones/{milestone_id}/submit", response_model=models.MilestonePublic)
async def submit_milestone(
    milestone_id: str,
    payload: models.MilestoneSubmit,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = MilestoneService(db)
    milestone = service.submit_milestone(milestone_id, current_user, payload.submissionText, payload.fileIds)
    schedule_events(background_tasks, service)
    return milestone


@app.post(
    "/milestones/{milestone_id}/feedback",
    response_model=models.FeedbackPublic,
    status_code=status.HTTP_201_CREATED
)
async def provide_feedback(
    milestone_id: str,
    payload: models.FeedbackCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = MilestoneService(db)
    feedback = service.provide_feedback(milestone_id, current_user, payload)
    schedule_events(background_tasks, service)
    return feedback


@app.get("/milestones/{milestone_id}/feedback", response_model=List[models.FeedbackPublic])
async def list_feedback(
    milestone_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return MilestoneService(db).list_feedback(milestone_id)


# ============================================
# GUIDE ALLOCATION
# ============================================

@app.get("/guides", response_model=List[models.GuideSummary])
async def list_guides(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return AllocationService(db).list_guides()


@app.get("/guides/{guide_id}/workload")
async def get_guide_workload(
    guide_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return AllocationService(db).guide_workload(guide_id)


@app.post("/allocations", response_model=models.ProjectPublic)
async def assign_guide(
    payload: models.AssignGuideRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    service = AllocationService(db)
    project = service.assign_guide(payload.projectId, payload.guideId)
    schedule_events(background_tasks, service)
    return project


@app.put("/allocations/{project_id}", response_model=models.ProjectPublic)
async def reassign_guide(
    project_id: str,
    payload: models.ReassignGuideRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    service = AllocationService(db)
    project = service.assign_guide(project_id, payload.guideId)
    schedule_events(background_tasks, service)
    return project


# ============================================
# ANALYTICS
# ============================================

@app.get("/analytics/dashboard")
async def get_dashboard(
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    return analytics.dashboard(db)


@app.get("/analytics/guide-workload")
async def get_guide_workload_report(
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    return analytics.guide_workload(db)


@app.get("/analytics/project-status")
async def get_project_status_report(
    academic_year: Optional[str] = Query(None, alias="academicYear"),
    semester: Optional[str] = Query(None),
    db: Database = Depends(get_db),
    staff_user: dict = Depends(get_current_staff_user)
):
    return analytics.project_status(db, academic_year, semester)


@app.get("/analytics/duplicates")
async def get_duplicate_report(
    db: Database = Depends(get_db),
    admin_user: dict = Depends(get_current_admin_user)
):
    report = analytics.duplicate_report(db)
    return {"count": len(report), "duplicates": report}


@app.get("/analytics/delayed")
async def get_delayed_projects(
    db: Database = Depends(get_db),
    staff_user: dict = Depends(get_current_staff_user)
):
    # faculty only see the projects they guide
    guide_id = None if is_admin(staff_user) else staff_user["_id"]
    delayed = analytics.delayed_projects(db, guide_id)
    return {"count": len(delayed), "delayedProjects": delayed}


# ============================================
# NOTIFICATIONS
# ============================================

@app.get("/notifications")
async def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    service = NotificationService(db)
    notifications = service.list_for_user(current_user["_id"], unread_only)
    return {
        "count": len(notifications),
        "unreadCount": service.unread_count(current_user["_id"]),
        "notifications": [models.NotificationPublic(**n) for n in notifications],
    }


@app.put("/notifications/read-all", response_model=models.MessageResponse)
async def mark_all_notifications_read(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    updated = NotificationService(db).mark_all_read(current_user["_id"])
    return {"message": "All notifications marked as read", "data": {"updated": updated}}


@app.put("/notifications/{notification_id}/read", response_model=models.NotificationPublic)
async def mark_notification_read(
    notification_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    return NotificationService(db).mark_read(notification_id, current_user["_id"])


# ============================================
# FILES
# ============================================

@app.post("/upload", response_model=models.FilePublic, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    projectId: Optional[str] = Form(None),
    milestoneId: Optional[str] = Form(None),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    store = FileStore(db)
    content = await store.read(file)
    subdir = "milestones" if milestoneId else "projects" if projectId else "general"
    return store.save(
        file.filename,
        content,
        file.content_type,
        subdir,
        current_user["_id"],
        project_id=projectId or None,
        milestone_id=milestoneId or None,
    )


@app.get("/files/{file_id}")
async def download_file(
    file_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db)
):
    record = FileStore(db).get(file_id)
    if not os.path.exists(record["filePath"]):
        raise errors.NotFoundError("File", file_id, message="File not found on server")
    return FileResponse(record["filePath"], filename=record["fileName"], media_type=record.get("fileType"))
