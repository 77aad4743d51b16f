"""Delegate Repository - MongoDB data access for approval delegations"""
from typing import Iterable, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING

from .base import DelegateRepository
from .mongo_client import get_collection, save_versioned
from ..domain.models import ApprovalDelegate


class MongoDelegateRepository(DelegateRepository):
    """Repository for delegation records"""

    def __init__(self, collection: Optional[Collection] = None):
        self._delegates: Collection = collection if collection is not None else get_collection("approval_delegates")

    def save(self, delegate: ApprovalDelegate, expected_version: Optional[int] = None) -> ApprovalDelegate:
        stored = save_versioned(
            self._delegates, "delegate_record_id", delegate.model_dump(), expected_version, "Delegation"
        )
        return ApprovalDelegate.model_validate(stored)

    def find(self, delegate_record_id: str) -> Optional[ApprovalDelegate]:
        doc = self._delegates.find_one({"delegate_record_id": delegate_record_id})
        if doc:
            doc.pop("_id", None)
            return ApprovalDelegate.model_validate(doc)
        return None

    def find_active_for(self, organization_id: str, delegator_ids: Iterable[str]) -> List[ApprovalDelegate]:
        cursor = self._delegates.find({
            "organization_id": organization_id,
            "delegator_id": {"$in": list(delegator_ids)},
            "is_active": True
        }).sort("created_at", DESCENDING)

        records = []
        for doc in cursor:
            doc.pop("_id", None)
            records.append(ApprovalDelegate.model_validate(doc))
        return records
