# Duplicate Project Detection
#
# Keyword-overlap heuristic over project titles. The result is a warning to
# show the submitter or a reviewer; it never blocks a write.

import math
import os
import re
from typing import List, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pymongo.database import Database

from models import DuplicateCheckResult, ProjectStatus, SimilarProject, SimilarProjectSummary

load_dotenv()

# --- Tuning knobs ---
MIN_KEYWORD_LENGTH = int(os.getenv("DUPLICATE_MIN_KEYWORD_LENGTH", "3"))     # keep tokens longer than this
SIMILARITY_THRESHOLD = int(os.getenv("DUPLICATE_SIMILARITY_THRESHOLD", "70"))  # strictly greater counts
CANDIDATE_LIMIT = int(os.getenv("DUPLICATE_CANDIDATE_LIMIT", "10"))


def extract_keywords(title: Optional[str], min_length: int = None) -> List[str]:
    """Lowercased whitespace tokens longer than min_length, first occurrence order, no repeats."""
    if min_length is None:
        min_length = MIN_KEYWORD_LENGTH
    keywords: List[str] = []
    for token in (title or "").lower().split():
        if len(token) > min_length and token not in keywords:
            keywords.append(token)
    return keywords


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def similarity_score(keywords: Sequence[str], other_keywords: Sequence[str]) -> int:
    """
    Percentage of candidate keywords that overlap the other title's keywords.

    A keyword matches when either token contains the other as a substring
    ("traffic" matches "traffics"). The denominator is the larger keyword set.
    """
    denominator = max(len(keywords), len(other_keywords))
    if denominator == 0:
        return 0
    matches = sum(
        1 for k in keywords
        if any(k in other or other in k for other in other_keywords)
    )
    return round_half_up(100 * matches / denominator)


class DuplicateDetector:
    def __init__(
        self,
        db: Database,
        threshold: int = None,
        min_keyword_length: int = None,
        limit: int = None,
    ):
        self.db = db
        self.threshold = SIMILARITY_THRESHOLD if threshold is None else threshold
        self.min_keyword_length = MIN_KEYWORD_LENGTH if min_keyword_length is None else min_keyword_length
        self.limit = CANDIDATE_LIMIT if limit is None else limit

    def _candidate_query(self, keywords: List[str], exclude_project_id: Optional[str]) -> dict:
        query = {
            "$or": [{"title": {"$regex": re.escape(k), "$options": "i"}} for k in keywords],
            "status": {"$ne": ProjectStatus.REJECTED.value},
        }
        if exclude_project_id:
            try:
                query["_id"] = {"$ne": ObjectId(str(exclude_project_id))}
            except InvalidId:
                # Not a stored id, so nothing to exclude
                pass
        return query

    def _group_name(self, group_id: Optional[str]) -> Optional[str]:
        if not group_id:
            return None
        try:
            group = self.db.groups.find_one({"_id": ObjectId(group_id)}, {"groupName": 1})
        except InvalidId:
            return None
        return group.get("groupName") if group else None

    def detect(
        self,
        title: str,
        description: Optional[str] = None,
        exclude_project_id: Optional[str] = None,
    ) -> DuplicateCheckResult:
        # description is accepted for API compatibility; only titles are compared
        keywords = extract_keywords(title, self.min_keyword_length)
        if not keywords:
            return DuplicateCheckResult(isDuplicate=False, similarProjects=[], allSimilar=[])

        candidates = self.db.projects.find(
            self._candidate_query(keywords, exclude_project_id),
            {"title": 1, "description": 1, "groupId": 1, "status": 1},
        ).limit(self.limit)

        scored: List[SimilarProject] = []
        for project in candidates:
            project_keywords = extract_keywords(project.get("title"), self.min_keyword_length)
            scored.append(SimilarProject(
                project=SimilarProjectSummary(
                    id=str(project["_id"]),
                    title=project.get("title", ""),
                    description=project.get("description"),
                    groupName=self._group_name(project.get("groupId")),
                    status=project.get("status"),
                ),
                similarity=similarity_score(keywords, project_keywords),
            ))

        duplicates = [p for p in scored if p.similarity > self.threshold]
        return DuplicateCheckResult(
            isDuplicate=bool(duplicates),
            similarProjects=duplicates,
            allSimilar=scored,
        )
