"""Instance Repository - MongoDB data access for approval instances"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING

from .base import InstanceRepository, INSTANCE_FILTERS, normalize_filters
from .mongo_client import get_collection, save_versioned
from ..domain.enums import InstanceStatus
from ..domain.models import Instance, Page
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MongoInstanceRepository(InstanceRepository):
    """Repository for approval instance operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._instances: Collection = collection if collection is not None else get_collection("approval_instances")

    def save(self, instance: Instance, expected_version: Optional[int] = None) -> Instance:
        # Don't use mode="json" - it converts datetime to strings, breaking deadline queries
        stored = save_versioned(
            self._instances, "instance_id", instance.model_dump(), expected_version, "Instance"
        )
        logger.debug(
            f"Saved instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "status": instance.status.value}
        )
        return Instance.model_validate(stored)

    def find(self, instance_id: str) -> Optional[Instance]:
        doc = self._instances.find_one({"instance_id": instance_id})
        if doc:
            doc.pop("_id", None)
            return Instance.model_validate(doc)
        return None

    def query(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Instance]:
        query: Dict[str, Any] = {"organization_id": organization_id}
        for key, value in normalize_filters(filters, INSTANCE_FILTERS).items():
            field = "awaiting_approvers" if key == "awaiting_approver" else key
            query[field] = {"$in": value} if isinstance(value, list) else value

        total = self._instances.count_documents(query)
        cursor = self._instances.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        items = []
        for doc in cursor:
            doc.pop("_id", None)
            items.append(Instance.model_validate(doc))
        return Page(items=items, total=total, skip=skip, limit=limit)

    def find_due_instance_ids(self, now: datetime) -> List[str]:
        cursor = self._instances.find(
            {"status": InstanceStatus.IN_PROGRESS.value, "next_deadline": {"$lt": now}},
            {"instance_id": 1}
        ).sort("next_deadline", ASCENDING)
        return [doc["instance_id"] for doc in cursor]

    def find_reminder_candidate_ids(self, active_before: datetime) -> List[str]:
        cursor = self._instances.find(
            {"status": InstanceStatus.IN_PROGRESS.value, "active_since": {"$lte": active_before}},
            {"instance_id": 1}
        ).sort("active_since", ASCENDING)
        return [doc["instance_id"] for doc in cursor]
