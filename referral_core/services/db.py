"""
Record store for profiles and job postings.

The core only reads snapshots by id (plus a bulk lookup for batch scoring);
writes exist for seeding and for the owning application.
"""
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from referral_core.models.domain import JobPosting, Profile
from referral_core.utils.exceptions import NotFoundError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)


def to_dict(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


class InMemoryRecordStore:
    """Dict-backed store used for tests and single-process deployments."""

    def __init__(self):
        self.profiles: Dict[str, Profile] = {}
        self.jobs: Dict[str, JobPosting] = {}

    async def init_indexes(self) -> None:
        return None

    async def get_profile(self, profile_id: str) -> Profile:
        try:
            return self.profiles[profile_id]
        except KeyError:
            raise NotFoundError("Profile", profile_id)

    async def get_job(self, job_id: str) -> JobPosting:
        try:
            return self.jobs[job_id]
        except KeyError:
            raise NotFoundError("Job", job_id)

    async def find_profiles(self, ids: Optional[List[str]] = None, limit: int = 100) -> List[Profile]:
        if ids is None:
            return list(self.profiles.values())[:limit]
        return [self.profiles[i] for i in ids if i in self.profiles][:limit]

    async def update_profile(self, profile: Profile) -> Profile:
        self.profiles[profile.id] = profile
        return profile

    async def save_job(self, job: JobPosting) -> JobPosting:
        self.jobs[job.id] = job
        return job


class MongoRecordStore:
    """motor-backed store over the `profiles` and `jobs` collections."""

    def __init__(self, db):
        self.db = db
        self.profiles_coll = db["profiles"]
        self.jobs_coll = db["jobs"]

    async def init_indexes(self) -> None:
        logger.info("Starting database index initialization")
        for coll in (self.profiles_coll, self.jobs_coll):
            try:
                await coll.create_index([("id", ASCENDING)], unique=True)
                logger.debug(f"Created unique index on {coll.name}.id")
            except PyMongoError as e:
                if "already exists" in str(e).lower():
                    logger.debug(f"Index on {coll.name}.id already exists")
                else:
                    logger.warning(f"Could not create unique index on {coll.name}.id: {e}")
        logger.info("Database index initialization completed")

    async def get_profile(self, profile_id: str) -> Profile:
        doc = to_dict(await self.profiles_coll.find_one({"id": profile_id}))
        if doc is None:
            raise NotFoundError("Profile", profile_id)
        return Profile(**doc)

    async def get_job(self, job_id: str) -> JobPosting:
        doc = to_dict(await self.jobs_coll.find_one({"id": job_id}))
        if doc is None:
            raise NotFoundError("Job", job_id)
        return JobPosting(**doc)

    async def find_profiles(self, ids: Optional[List[str]] = None, limit: int = 100) -> List[Profile]:
        query = {} if ids is None else {"id": {"$in": ids}}
        docs = await self.profiles_coll.find(query).limit(limit).to_list(length=limit)
        return [Profile(**to_dict(d)) for d in docs]

    async def update_profile(self, profile: Profile) -> Profile:
        await self.profiles_coll.replace_one({"id": profile.id}, profile.model_dump(mode="json"), upsert=True)
        return profile

    async def save_job(self, job: JobPosting) -> JobPosting:
        await self.jobs_coll.replace_one({"id": job.id}, job.model_dump(mode="json"), upsert=True)
        return job
