# Analytics & Reports

from collections import OrderedDict
from typing import List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import as_utc, stringify_id, utcnow
from duplicates import DuplicateDetector
from models import MilestoneStatus, ProjectStatus, Role

ACTIVE_STATUSES = [ProjectStatus.APPROVED.value, ProjectStatus.IN_PROGRESS.value]


def _counts_by(db: Database, field: str, match: Optional[dict] = None) -> List[dict]:
    pipeline = []
    if match:
        pipeline.append({"$match": match})
    pipeline += [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]
    return list(db.projects.aggregate(pipeline))


def _group_names(db: Database, group_ids: List[str]) -> dict:
    oids = [ObjectId(g) for g in set(group_ids) if g and ObjectId.is_valid(g)]
    if not oids:
        return {}
    return {str(g["_id"]): g.get("groupName") for g in db.groups.find({"_id": {"$in": oids}}, {"groupName": 1})}


def dashboard(db: Database) -> dict:
    recent = [stringify_id(p) for p in db.projects.find().sort("createdAt", -1).limit(5)]
    names = _group_names(db, [p.get("groupId") for p in recent])
    for project in recent:
        project["groupName"] = names.get(project.get("groupId"))

    return {
        "overview": {
            "totalProjects": db.projects.count_documents({}),
            "totalStudents": db.users.count_documents({"role": Role.STUDENT.value}),
            "totalFaculty": db.users.count_documents({"role": Role.FACULTY.value, "isVerified": True}),
            "pendingReviews": db.projects.count_documents({"status": ProjectStatus.PROPOSED.value}),
        },
        "statusDistribution": _counts_by(db, "status"),
        "typeDistribution": _counts_by(db, "projectType"),
        "recentProjects": recent,
    }


def guide_workload(db: Database) -> List[dict]:
    rows = list(db.projects.aggregate([
        {"$match": {"guideId": {"$ne": None}, "status": {"$in": ACTIVE_STATUSES}}},
        {"$group": {"_id": "$guideId", "projectCount": {"$sum": 1}}},
    ]))

    # guideId is stored as a string, so the user join happens here rather than in $lookup
    guide_oids = [ObjectId(r["_id"]) for r in rows if ObjectId.is_valid(r["_id"])]
    guides = {str(u["_id"]): u for u in db.users.find({"_id": {"$in": guide_oids}})}

    workload = []
    for row in rows:
        guide = guides.get(row["_id"])
        if not guide:
            continue
        workload.append({
            "guideId": row["_id"],
            "guideName": guide.get("fullName"),
            "department": guide.get("department"),
            "projectCount": row["projectCount"],
        })
    workload.sort(key=lambda w: w["projectCount"], reverse=True)
    return workload


def project_status(db: Database, academic_year: Optional[str] = None, semester: Optional[str] = None) -> dict:
    match = {}
    if academic_year:
        match["academicYear"] = academic_year
    if semester:
        match["semester"] = semester

    pipeline = [{"$match": match}] if match else []
    pipeline.append({
        "$group": {
            "_id": {"status": "$status", "projectType": "$projectType"},
            "count": {"$sum": 1},
        }
    })

    by_status: "OrderedDict[str, dict]" = OrderedDict()
    for row in db.projects.aggregate(pipeline):
        status = row["_id"]["status"]
        entry = by_status.setdefault(status, {"status": status, "types": [], "total": 0})
        entry["types"].append({"type": row["_id"]["projectType"], "count": row["count"]})
        entry["total"] += row["count"]

    total_milestones = db.milestones.count_documents({})
    completed = db.milestones.count_documents({"status": MilestoneStatus.APPROVED.value})
    rate = round(completed / total_milestones * 100, 2) if total_milestones else 0

    return {
        "statusData": list(by_status.values()),
        "milestoneStats": {
            "total": total_milestones,
            "completed": completed,
            "completionRate": f"{rate:.2f}%",
        },
    }


def duplicate_report(db: Database, detector: Optional[DuplicateDetector] = None) -> List[dict]:
    """Clusters non-rejected projects with their likely duplicates, each project reported once."""
    detector = detector or DuplicateDetector(db)
    projects = list(db.projects.find(
        {"status": {"$ne": ProjectStatus.REJECTED.value}},
        {"title": 1, "description": 1, "status": 1, "groupId": 1},
    ))
    names = _group_names(db, [p.get("groupId") for p in projects])

    checked = set()
    clusters = []
    for project in projects:
        project_id = str(project["_id"])
        if project_id in checked:
            continue

        result = detector.detect(project.get("title", ""), project.get("description"), project_id)
        if not result.isDuplicate:
            continue

        checked.add(project_id)
        checked.update(sp.project.id for sp in result.similarProjects)
        clusters.append({
            "mainProject": {
                "id": project_id,
                "title": project.get("title"),
                "groupName": names.get(project.get("groupId")),
                "status": project.get("status"),
            },
            "similarProjects": [sp.model_dump() for sp in result.similarProjects],
        })
    return clusters


def delayed_projects(db: Database, guide_id: Optional[str] = None) -> List[dict]:
    """Projects with milestones past due that are still pending or awaiting review."""
    now = utcnow()
    open_statuses = [MilestoneStatus.PENDING.value, MilestoneStatus.SUBMITTED.value]

    by_project: "OrderedDict[str, dict]" = OrderedDict()
    for milestone in db.milestones.find({"status": {"$in": open_statuses}}).sort("dueDate", 1):
        due = as_utc(milestone.get("dueDate"))
        if due is None or due >= now:
            continue

        project_id = milestone["projectId"]
        if project_id not in by_project:
            project = db.projects.find_one({"_id": ObjectId(project_id)}) if ObjectId.is_valid(project_id) else None
            if not project or (guide_id and project.get("guideId") != guide_id):
                by_project[project_id] = None
                continue
            by_project[project_id] = {"project": stringify_id(project), "delayedMilestones": []}

        entry = by_project[project_id]
        if entry is None:
            continue
        entry["delayedMilestones"].append({
            "id": str(milestone["_id"]),
            "title": milestone.get("title"),
            "dueDate": due,
            "status": milestone.get("status"),
            "daysDelayed": (now - due).days,
        })

    return [entry for entry in by_project.values() if entry]
