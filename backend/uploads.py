# File Storage

import os
import uuid
from typing import Optional

from dotenv import load_dotenv
from fastapi import UploadFile
from pymongo.database import Database

import errors
from database import stringify_id, to_object_id, utcnow
from logging_config import logger

load_dotenv()

# --- Configuration ---
UPLOAD_PATH = os.getenv("UPLOAD_PATH", "./uploads")
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10MB
ALLOWED_EXTENSIONS = {".pdf", ".doc", ".docx", ".ppt", ".pptx", ".zip"}


class FileStore:
    """Writes uploads to disk under UPLOAD_PATH and records them in `files`."""

    def __init__(self, db: Database, upload_path: Optional[str] = None, max_size: Optional[int] = None):
        self.db = db
        self.upload_path = upload_path or UPLOAD_PATH
        self.max_size = MAX_FILE_SIZE if max_size is None else max_size

    def check_extension(self, filename: Optional[str]) -> str:
        ext = os.path.splitext(filename or "")[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise errors.ValidationError(
                "Invalid file type. Only PDF, DOC, DOCX, PPT, PPTX, and ZIP files are allowed.",
                details={"fileName": filename, "allowed": sorted(ALLOWED_EXTENSIONS)}
            )
        return ext

    async def read(self, upload: UploadFile) -> bytes:
        """Validates type and size and returns the content. Nothing is written."""
        self.check_extension(upload.filename)
        content = await upload.read()
        if not content:
            raise errors.ValidationError("Uploaded file is empty")
        if len(content) > self.max_size:
            raise errors.ValidationError(
                f"File too large (max {self.max_size // (1024 * 1024)}MB)",
                details={"fileSize": len(content), "maxSize": self.max_size}
            )
        return content

    def save(
        self,
        file_name: str,
        content: bytes,
        content_type: Optional[str],
        subdir: str,
        uploader_id: str,
        project_id: Optional[str] = None,
        milestone_id: Optional[str] = None,
    ) -> dict:
        ext = self.check_extension(file_name)
        directory = os.path.join(self.upload_path, subdir)
        os.makedirs(directory, exist_ok=True)

        stored_path = os.path.join(directory, f"{uuid.uuid4().hex}{ext}")
        with open(stored_path, "wb") as f:
            f.write(content)

        result = self.db.files.insert_one({
            "uploadedBy": uploader_id,
            "fileName": file_name,
            "filePath": stored_path,
            "fileType": content_type,
            "fileSize": len(content),
            "projectId": project_id,
            "milestoneId": milestone_id,
            "createdAt": utcnow(),
        })
        logger.info(f"[Files] Stored {file_name} ({len(content)} bytes) at {stored_path}")
        return stringify_id(self.db.files.find_one({"_id": result.inserted_id}))

    def get(self, file_id: str) -> dict:
        record = self.db.files.find_one({"_id": to_object_id(file_id, "file ID")})
        if not record:
            raise errors.NotFoundError("File", file_id)
        return stringify_id(record)
