# backend/database.py

import os
import datetime
from typing import Optional

import certifi
from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import ConnectionFailure

import errors
from logging_config import logger

load_dotenv()  # keep support for .env

# --- Configuration ---
DATABASE_NAME = os.getenv("DATABASE_NAME", "projecttrack_db")  # same for local & Atlas

client: MongoClient = None
db: Database = None


def _resolve_mongo_uri() -> str:
    """
    Priority:
      1) Environment variable MONGO_URI (set by BAT or shell)
      2) .env variables (DEFAULT, LOCAL_URI, ATLAS_URI)
      3) Fallback: local mongodb
    """
    env_uri = os.getenv("MONGO_URI")
    if env_uri:
        logger.info("MONGO_URI resolved from ENV.")
        return env_uri

    local_uri = os.getenv("LOCAL_URI", "mongodb://127.0.0.1:27017/")
    atlas_uri = os.getenv("ATLAS_URI")
    default_mode = os.getenv("DEFAULT", "LOCAL").upper()

    if default_mode == "ATLAS" and atlas_uri:
        logger.info("MONGO_URI resolved from .env (DEFAULT=ATLAS).")
        return atlas_uri

    logger.info("MONGO_URI resolved from .env (DEFAULT=LOCAL).")
    return local_uri


def ensure_indexes(database: Database) -> None:
    """Creates the indexes the core relies on. Safe to call repeatedly."""
    database.users.create_index("email", unique=True)
    database.users.create_index("role")

    # One row per student across all groups: the storage-level guarantee
    # behind cross-group membership exclusion.
    database.group_memberships.create_index("studentId", unique=True)
    database.group_memberships.create_index("groupId")
    database.groups.create_index("members.studentId")

    database.projects.create_index("groupId")
    database.projects.create_index("guideId")
    database.projects.create_index("status")
    database.projects.create_index([("createdAt", DESCENDING)])

    database.milestones.create_index([("projectId", ASCENDING), ("dueDate", ASCENDING)])
    database.milestones.create_index("status")
    database.feedback.create_index("milestoneId")
    database.notifications.create_index([("userId", ASCENDING), ("isRead", ASCENDING)])
    database.files.create_index("projectId")


def connect_to_mongo():
    """Establishes connection to MongoDB."""
    global client, db

    mongo_uri = _resolve_mongo_uri()
    logger.info(f"Attempting to connect to MongoDB using URI: {mongo_uri} ...")

    try:
        # Only use certifi for remote connections (Atlas), skip for local to avoid SSL errors
        if "localhost" in mongo_uri or "127.0.0.1" in mongo_uri:
            client = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
        else:
            client = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000, tlsCAFile=certifi.where())

        client.admin.command("ping")
        db = client[DATABASE_NAME]
        logger.info(f"Connected to MongoDB database '{DATABASE_NAME}'.")

        ensure_indexes(db)
        return db
    except ConnectionFailure as e:
        client = None
        db = None
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise ConnectionFailure(f"Could not connect to MongoDB at {mongo_uri}.")
    except Exception as e:
        client = None
        db = None
        logger.error(f"Unexpected MongoDB error: {e!r}")
        raise


def get_database() -> Database:
    if db is None:
        raise ConnectionFailure("Database is not connected. Check startup logs.")
    return db


def close_mongo_connection():
    global client, db
    if client:
        client.close()
        logger.info("MongoDB connection closed.")
    client = None
    db = None


def to_object_id(value: Optional[str], label: str = "ID") -> ObjectId:
    """Parses a path/body id, raising a ValidationError for malformed values."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise errors.ValidationError(f"Invalid {label} format")


def stringify_id(doc: Optional[dict]) -> Optional[dict]:
    """Converts a document's ObjectId to str for response models."""
    if doc is not None and "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    # pymongo hands back naive datetimes (UTC); client input may be naive too
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def create_admin_user():
    """Seeds one admin account from ADMIN_EMAIL / ADMIN_PASSWORD when both are set."""
    from auth import get_password_hash

    if db is None:
        logger.warning("Cannot create admin user: Database not connected.")
        return

    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        return

    existing = db.users.find_one({"email": admin_email.lower()})
    if not existing:
        db.users.insert_one({
            "fullName": os.getenv("ADMIN_NAME", "Administrator"),
            "email": admin_email.lower(),
            "hashedPassword": get_password_hash(admin_password),
            "role": "admin",
            "department": None,
            "isVerified": True,
            "createdAt": utcnow()
        })
        logger.info(f"Seeded admin user {admin_email.lower()}")
