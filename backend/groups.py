# Group Lifecycle Management

import os
from datetime import timedelta
from typing import List, Optional

from bson import ObjectId
from dotenv import load_dotenv
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import errors
from database import as_utc, stringify_id, to_object_id, utcnow
from dispatcher import EventRecorder
from events import (
    GroupCreated,
    GroupDeleted,
    LeadershipRequested,
    LeadershipTransferred,
    MemberAdded,
    MemberLeft,
    MemberRemoved,
    Recipient,
    recipient_from_member,
)
from logging_config import logger
from models import MemberRole, Role, StudentLookup
from users import UserDirectory, is_admin

load_dotenv()

MIN_GROUP_SIZE = 1
MAX_GROUP_SIZE = 4
# Claims younger than this may belong to a group write still in flight
CLAIM_GRACE_SECONDS = int(os.getenv("MEMBERSHIP_CLAIM_GRACE_SECONDS", "300"))


def check_group_invariants(members: List[dict]) -> None:
    """Raises InvariantError unless size is within bounds, there is exactly one leader and no duplicates."""
    if not MIN_GROUP_SIZE <= len(members) <= MAX_GROUP_SIZE:
        raise errors.InvariantError(f"Group must have {MIN_GROUP_SIZE}-{MAX_GROUP_SIZE} members")

    leaders = [m for m in members if m.get("role") == MemberRole.LEADER.value]
    if len(leaders) != 1:
        raise errors.InvariantError("Group must have exactly one leader")

    student_ids = [m["studentId"] for m in members]
    if len(set(student_ids)) != len(student_ids):
        raise errors.InvariantError("A student cannot appear twice in a group")


def find_member(group: dict, student_id: str) -> Optional[dict]:
    return next((m for m in group.get("members", []) if m["studentId"] == student_id), None)


def find_leader(group: dict) -> Optional[dict]:
    return next((m for m in group.get("members", []) if m.get("role") == MemberRole.LEADER.value), None)


def member_doc(user: dict, role: MemberRole) -> dict:
    return {
        "studentId": user["_id"],
        "fullName": user.get("fullName", "Unknown"),
        "email": user.get("email", ""),
        "role": role.value,
    }


def _requester_recipient(user: dict) -> Recipient:
    return Recipient(userId=user["_id"], fullName=user.get("fullName", ""), email=user.get("email"))


class MembershipStore:
    """
    One claim document per student, keyed by a unique index on studentId.

    The unique index is what stops two groups from taking the same student
    concurrently; application-level checks only produce friendlier messages.
    """

    def __init__(self, db: Database):
        self.collection = db.group_memberships
        self.groups = db.groups

    def group_of(self, student_id: str) -> Optional[str]:
        claim = self.collection.find_one({"studentId": student_id})
        return claim["groupId"] if claim else None

    def claim(self, student_id: str, group_id: str) -> None:
        try:
            self.collection.insert_one({"studentId": student_id, "groupId": group_id, "claimedAt": utcnow()})
        except DuplicateKeyError:
            raise errors.ConflictError(
                "Student is already in another group",
                code="ALREADY_IN_GROUP",
                details={"studentId": student_id}
            )

    def release(self, student_id: str, group_id: str) -> None:
        self.collection.delete_one({"studentId": student_id, "groupId": group_id})

    def release_all(self, group_id: str) -> None:
        self.collection.delete_many({"groupId": group_id})

    def release_orphans(self, grace_seconds: int = CLAIM_GRACE_SECONDS) -> int:
        """
        Deletes claims whose group does not list the student.

        That happens only when a process dies between the claim insert and the
        group write. Such a claim would otherwise lock the student out of every group.
        """
        cutoff = utcnow() - timedelta(seconds=grace_seconds)
        released = 0
        for claim in self.collection.find({}):
            claimed_at = as_utc(claim.get("claimedAt"))
            if claimed_at and claimed_at > cutoff:
                continue
            group_id = claim.get("groupId")
            listed = ObjectId.is_valid(group_id) and self.groups.count_documents(
                {"_id": ObjectId(group_id), "members.studentId": claim["studentId"]}
            ) > 0
            if not listed:
                self.collection.delete_one({"_id": claim["_id"]})
                released += 1
        if released:
            logger.warning(f"[Groups] Released {released} orphaned membership claim(s)")
        return released


class GroupService(EventRecorder):
    """Maintains the group invariants across every mutating operation."""

    def __init__(self, db: Database):
        super().__init__()
        self.db = db
        self.directory = UserDirectory(db)
        self.memberships = MembershipStore(db)

    # --- helpers ---

    def _load(self, group_id: str) -> dict:
        group = self.db.groups.find_one({"_id": to_object_id(group_id, "group ID")})
        if not group:
            raise errors.NotFoundError("Group", group_id)
        return group

    def _authorize_manager(self, group: dict, requester: dict) -> None:
        if is_admin(requester):
            return
        member = find_member(group, requester["_id"])
        if not member:
            raise errors.AuthorizationError("Not a member of this group")
        if member.get("role") != MemberRole.LEADER.value:
            raise errors.AuthorizationError("Only group leader can perform this action")

    def _write(self, group: dict, update: dict, extra_filter: Optional[dict] = None) -> dict:
        """Compare-and-set on the version read; a concurrent writer makes this fail cleanly."""
        query = {"_id": group["_id"], "version": group.get("version", 0)}
        if extra_filter:
            query.update(extra_filter)

        update.setdefault("$set", {})["updatedAt"] = utcnow()
        update["$inc"] = {"version": 1}

        result = self.db.groups.update_one(query, update)
        if result.matched_count == 0:
            raise errors.ConflictError(
                "Group was modified by another request. Please retry.",
                code="CONCURRENT_MODIFICATION"
            )
        return stringify_id(self.db.groups.find_one({"_id": group["_id"]}))

    def _delete(self, group: dict) -> None:
        result = self.db.groups.delete_one({"_id": group["_id"], "version": group.get("version", 0)})
        if result.deleted_count == 0:
            raise errors.ConflictError(
                "Group was modified by another request. Please retry.",
                code="CONCURRENT_MODIFICATION"
            )
        self.memberships.release_all(str(group["_id"]))
        logger.info(f"[Groups] Group {group['_id']} deleted (no members left)")

    # --- queries ---

    def get_group(self, group_id: str, requester: dict) -> dict:
        group = self._load(group_id)
        if not is_admin(requester) and not find_member(group, requester["_id"]):
            raise errors.AuthorizationError("Access denied. You are not a member of this group.")
        return stringify_id(group)

    def list_groups_for_user(self, user_id: str) -> List[dict]:
        return [stringify_id(g) for g in self.db.groups.find({"members.studentId": user_id})]

    # --- mutations ---

    def create_group(self, requester: dict, group_name: str, member_ids: List[str]) -> dict:
        group_name = (group_name or "").strip()
        if not group_name:
            raise errors.ValidationError("Group name is required")
        if requester.get("role") != Role.STUDENT.value:
            raise errors.AuthorizationError("Only students can create groups")

        requester_id = requester["_id"]
        if self.memberships.group_of(requester_id):
            raise errors.ConflictError(
                "You are already part of a group. Leave your current group first.",
                code="ALREADY_IN_GROUP"
            )

        candidate_ids: List[str] = []
        for raw_id in member_ids or []:
            student_id = str(raw_id).strip()
            if student_id and student_id != requester_id and student_id not in candidate_ids:
                candidate_ids.append(student_id)

        if 1 + len(candidate_ids) > MAX_GROUP_SIZE:
            raise errors.ValidationError(f"Group cannot have more than {MAX_GROUP_SIZE} members")

        members = [member_doc(requester, MemberRole.LEADER)]
        for student_id in candidate_ids:
            student = self.directory.resolve_student(StudentLookup(by="id", value=student_id))
            if self.memberships.group_of(student["_id"]):
                raise errors.ConflictError(
                    f"{student.get('fullName', 'Student')} is already in another group",
                    code="ALREADY_IN_GROUP"
                )
            members.append(member_doc(student, MemberRole.MEMBER))

        check_group_invariants(members)

        group_oid = ObjectId()
        group_id = str(group_oid)
        now = utcnow()
        claimed: List[str] = []
        try:
            for member in members:
                self.memberships.claim(member["studentId"], group_id)
                claimed.append(member["studentId"])
            self.db.groups.insert_one({
                "_id": group_oid,
                "groupName": group_name,
                "members": members,
                "createdBy": requester_id,
                "createdAt": now,
                "updatedAt": now,
                "version": 0,
            })
        except Exception:
            for student_id in claimed:
                self.memberships.release(student_id, group_id)
            raise

        logger.info(f"[Groups] {requester_id} created group {group_id} with {len(members)} member(s)")
        self._emit(GroupCreated(
            groupId=group_id,
            groupName=group_name,
            createdByName=requester.get("fullName", ""),
            addedMembers=[recipient_from_member(m) for m in members[1:]],
        ))
        return stringify_id(self.db.groups.find_one({"_id": group_oid}))

    def add_member(self, group_id: str, requester: dict, lookup: StudentLookup) -> dict:
        group = self._load(group_id)
        self._authorize_manager(group, requester)

        student = self.directory.resolve_student(lookup)
        student_id = student["_id"]
        name = student.get("fullName", "Student")

        if find_member(group, student_id):
            raise errors.ConflictError(f"{name} is already in this group", code="ALREADY_IN_GROUP")
        if self.memberships.group_of(student_id):
            raise errors.ConflictError(f"{name} is already in another group", code="ALREADY_IN_GROUP")
        if len(group.get("members", [])) >= MAX_GROUP_SIZE:
            raise errors.CapacityError(MAX_GROUP_SIZE)

        new_member = member_doc(student, MemberRole.MEMBER)
        check_group_invariants(group["members"] + [new_member])

        self.memberships.claim(student_id, group_id)
        try:
            updated = self._write(
                group,
                {"$push": {"members": new_member}},
                extra_filter={"members.studentId": {"$ne": student_id}},
            )
        except errors.ConflictError:
            self.memberships.release(student_id, group_id)
            raise

        self._emit(MemberAdded(
            groupId=group_id,
            groupName=group["groupName"],
            addedByName=requester.get("fullName", ""),
            member=recipient_from_member(new_member),
        ))
        return updated

    def remove_member(self, group_id: str, requester: dict, target_student_id: str) -> Optional[dict]:
        """Returns the updated group, or None when the removal emptied and deleted it."""
        group = self._load(group_id)
        self._authorize_manager(group, requester)

        target = find_member(group, target_student_id)
        if not target:
            raise errors.NotFoundError("Member", target_student_id, message="Student is not a member of this group")
        if target.get("role") == MemberRole.LEADER.value:
            raise errors.InvariantError("Cannot remove leader. Transfer leadership first.")

        remaining = [m for m in group["members"] if m["studentId"] != target_student_id]
        updated = None
        if remaining:
            check_group_invariants(remaining)
            updated = self._write(group, {"$set": {"members": remaining}})
            self.memberships.release(target_student_id, group_id)
        else:
            self._delete(group)
            self._emit(GroupDeleted(groupId=group_id, groupName=group["groupName"]))

        self._emit(MemberRemoved(
            groupId=group_id,
            groupName=group["groupName"],
            member=recipient_from_member(target),
        ))
        return updated

    def leave_group(self, group_id: str, requester: dict) -> Optional[dict]:
        """Returns the updated group, or None when the requester was the last member."""
        group = self._load(group_id)

        member = find_member(group, requester["_id"])
        if not member:
            raise errors.ValidationError("You are not a member of this group")

        remaining = [m for m in group["members"] if m["studentId"] != requester["_id"]]
        if member.get("role") == MemberRole.LEADER.value and remaining:
            raise errors.InvariantError(
                "Leader cannot leave the group while other members remain. Transfer leadership first."
            )

        if not remaining:
            self._delete(group)
            self._emit(GroupDeleted(groupId=group_id, groupName=group["groupName"]))
            return None

        check_group_invariants(remaining)
        updated = self._write(group, {"$set": {"members": remaining}})
        self.memberships.release(requester["_id"], group_id)

        leader = find_leader(updated)
        self._emit(MemberLeft(
            groupId=group_id,
            groupName=group["groupName"],
            member=recipient_from_member(member),
            leader=recipient_from_member(leader) if leader else None,
        ))
        return updated

    def transfer_leadership(self, group_id: str, requester: dict, new_leader_id: str) -> dict:
        group = self._load(group_id)
        self._authorize_manager(group, requester)

        new_leader = find_member(group, new_leader_id)
        if not new_leader:
            raise errors.NotFoundError("Member", new_leader_id, message="New leader is not a member of this group")

        current_leader = find_leader(group)
        if current_leader and current_leader["studentId"] == new_leader_id:
            raise errors.ValidationError("This member is already the leader")

        new_members = []
        for m in group["members"]:
            if m["studentId"] == new_leader_id:
                new_members.append({**m, "role": MemberRole.LEADER.value})
            elif m.get("role") == MemberRole.LEADER.value:
                new_members.append({**m, "role": MemberRole.MEMBER.value})
            else:
                new_members.append(m)

        check_group_invariants(new_members)
        updated = self._write(group, {"$set": {"members": new_members}})

        self._emit(LeadershipTransferred(
            groupId=group_id,
            groupName=group["groupName"],
            previousLeader=recipient_from_member(current_leader) if current_leader else None,
            newLeader=recipient_from_member(new_leader),
        ))
        return updated

    def request_leadership_transfer(self, group_id: str, requester: dict) -> None:
        group = self._load(group_id)

        member = find_member(group, requester["_id"])
        if not member:
            raise errors.ValidationError("You are not a member of this group")
        if member.get("role") == MemberRole.LEADER.value:
            raise errors.ValidationError("You are already the leader")

        leader = find_leader(group)
        if not leader:
            logger.warning(f"[Groups] Group {group_id} has no leader; leadership request ignored")
            return

        self._emit(LeadershipRequested(
            groupId=group_id,
            groupName=group["groupName"],
            requester=_requester_recipient(requester),
            leader=recipient_from_member(leader),
        ))

    def rename_group(self, group_id: str, requester: dict, group_name: str) -> dict:
        group = self._load(group_id)
        self._authorize_manager(group, requester)

        group_name = (group_name or "").strip()
        if not group_name:
            raise errors.ValidationError("Group name is required")
        return self._write(group, {"$set": {"groupName": group_name}})
