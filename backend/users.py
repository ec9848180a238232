# User Directory

from typing import List, Optional

from bson import ObjectId
from pymongo.database import Database

import errors
from database import stringify_id, to_object_id
from models import Role, StudentLookup, UserUpdate


def is_admin(user: dict) -> bool:
    return user.get("role") == Role.ADMIN.value


class UserDirectory:
    """Read access to user records plus the few profile writes the API allows."""

    def __init__(self, db: Database):
        self.db = db

    def find_by_id(self, user_id: str) -> Optional[dict]:
        # A malformed id names no user
        if not ObjectId.is_valid(user_id):
            return None
        return stringify_id(self.db.users.find_one({"_id": ObjectId(user_id)}))

    def find_by_email(self, email: str) -> Optional[dict]:
        return stringify_id(self.db.users.find_one({"email": email.lower()}))

    def get(self, user_id: str) -> dict:
        user = self.find_by_id(user_id)
        if not user:
            raise errors.NotFoundError("User", user_id)
        return user

    def resolve(self, lookup: StudentLookup) -> Optional[dict]:
        if lookup.by == "id":
            return self.find_by_id(lookup.value)
        return self.find_by_email(lookup.value)

    def resolve_student(self, lookup: StudentLookup) -> dict:
        """Returns the student for an id/email lookup, or NotFoundError for anything else."""
        user = self.resolve(lookup)
        if not user or user.get("role") != Role.STUDENT.value:
            raise errors.NotFoundError("Student", lookup.value, message="Student not found")
        return user

    def list_users(self, role: Optional[str] = None, is_verified: Optional[bool] = None) -> List[dict]:
        query = {}
        if role:
            query["role"] = role
        if is_verified is not None:
            query["isVerified"] = is_verified
        return [stringify_id(u) for u in self.db.users.find(query).sort("fullName", 1)]

    def update_profile(self, user_id: str, requester: dict, update: UserUpdate) -> dict:
        if not is_admin(requester) and requester["_id"] != user_id:
            raise errors.AuthorizationError("Not authorized to update this user")

        update_doc = update.model_dump(exclude_unset=True, exclude_none=True)
        if not update_doc:
            raise errors.ValidationError("No update data provided")

        result = self.db.users.update_one({"_id": to_object_id(user_id, "user ID")}, {"$set": update_doc})
        if result.matched_count == 0:
            raise errors.NotFoundError("User", user_id)
        return self.get(user_id)

    def verify(self, user_id: str) -> dict:
        result = self.db.users.update_one(
            {"_id": to_object_id(user_id, "user ID")},
            {"$set": {"isVerified": True}}
        )
        if result.matched_count == 0:
            raise errors.NotFoundError("User", user_id)
        return self.get(user_id)
