"""In-Memory Repositories - Process-local persistence

Used for tests and single-process deployments. Records are deep-copied on
the way in and out so callers never share mutable state with the store.
"""
from datetime import datetime
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from pydantic import BaseModel

from .base import (
    DelegateRepository, InstanceRepository, TemplateRepository,
    INSTANCE_FILTERS, TEMPLATE_FILTERS, normalize_filters
)
from ..domain.enums import InstanceStatus
from ..domain.errors import ConcurrentModificationError, ConflictError, NotFoundError, TemplateNotFoundError
from ..domain.models import ApprovalDelegate, Instance, Page, Template

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


class _VersionedStore(Generic[M]):
    """Dict of records keyed by id with optimistic version checks"""

    def __init__(self, key: Callable[[M], str], label: str):
        self._key = key
        self._label = label
        self._records: Dict[str, M] = {}
        self._lock = RLock()

    def save(self, record: M, expected_version: Optional[int]) -> M:
        record_id = self._key(record)
        with self._lock:
            current = self._records.get(record_id)
            if expected_version is None:
                if current is not None:
                    raise ConflictError(f"{self._label} {record_id} already exists")
                stored = record.model_copy(deep=True)
            else:
                if current is None:
                    raise NotFoundError(f"{self._label} {record_id} not found")
                if current.version != expected_version:
                    raise ConcurrentModificationError(
                        f"{self._label} {record_id} was modified concurrently",
                        details={"expected_version": expected_version, "actual_version": current.version}
                    )
                stored = record.model_copy(update={"version": expected_version + 1}, deep=True)
            self._records[record_id] = stored
            return stored.model_copy(deep=True)

    def find(self, record_id: str) -> Optional[M]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def select(self, predicate: Callable[[M], bool]) -> List[M]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values() if predicate(r)]

    def atomically(self, change: Callable[[Dict[str, M]], R]) -> R:
        """Run a multi-record change against the live records under the store lock"""
        with self._lock:
            return change(self._records)


def _matches(value: Any, expected: Any) -> bool:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(expected, list):
        return value in expected
    return value == expected


def _paginate(items: List[M], skip: int, limit: int) -> Page:
    return Page(items=items[skip:skip + limit], total=len(items), skip=skip, limit=limit)


class InMemoryTemplateRepository(TemplateRepository):
    """Template store held in process memory"""

    def __init__(self):
        self._store: _VersionedStore[Template] = _VersionedStore(lambda t: t.template_id, "Template")

    def save(self, template: Template, expected_version: Optional[int] = None) -> Template:
        return self._store.save(template, expected_version)

    def find(self, template_id: str) -> Optional[Template]:
        return self._store.find(template_id)

    def query(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Template]:
        criteria = normalize_filters(filters, TEMPLATE_FILTERS)

        def predicate(t: Template) -> bool:
            if t.organization_id != organization_id:
                return False
            return all(_matches(getattr(t, key), expected) for key, expected in criteria.items())

        items = sorted(self._store.select(predicate), key=lambda t: t.updated_at, reverse=True)
        return _paginate(items, skip, limit)

    def set_default(self, template_id: str, at: datetime) -> Template:
        def swap(records: Dict[str, Template]) -> Template:
            target = records.get(template_id)
            if target is None:
                raise TemplateNotFoundError(f"Template {template_id} not found")
            for record_id, record in list(records.items()):
                if record_id == template_id or not record.is_default:
                    continue
                if record.organization_id != target.organization_id or record.category != target.category:
                    continue
                records[record_id] = record.model_copy(
                    update={"is_default": False, "updated_at": at, "version": record.version + 1}
                )
            stored = target.model_copy(update={"is_default": True, "updated_at": at, "version": target.version + 1})
            records[template_id] = stored
            return stored.model_copy(deep=True)

        return self._store.atomically(swap)


class InMemoryInstanceRepository(InstanceRepository):
    """Instance store held in process memory"""

    def __init__(self):
        self._store: _VersionedStore[Instance] = _VersionedStore(lambda i: i.instance_id, "Instance")

    def save(self, instance: Instance, expected_version: Optional[int] = None) -> Instance:
        return self._store.save(instance, expected_version)

    def find(self, instance_id: str) -> Optional[Instance]:
        return self._store.find(instance_id)

    def query(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Instance]:
        criteria = normalize_filters(filters, INSTANCE_FILTERS)
        awaiting = criteria.pop("awaiting_approver", None)

        def predicate(i: Instance) -> bool:
            if i.organization_id != organization_id:
                return False
            if awaiting is not None and awaiting not in i.awaiting_approvers:
                return False
            return all(_matches(getattr(i, key), expected) for key, expected in criteria.items())

        items = sorted(self._store.select(predicate), key=lambda i: i.created_at, reverse=True)
        return _paginate(items, skip, limit)

    def find_due_instance_ids(self, now: datetime) -> List[str]:
        due = self._store.select(
            lambda i: i.status == InstanceStatus.IN_PROGRESS
            and i.next_deadline is not None
            and i.next_deadline < now
        )
        return [i.instance_id for i in sorted(due, key=lambda i: i.next_deadline)]

    def find_reminder_candidate_ids(self, active_before: datetime) -> List[str]:
        candidates = self._store.select(
            lambda i: i.status == InstanceStatus.IN_PROGRESS
            and i.active_since is not None
            and i.active_since <= active_before
        )
        return [i.instance_id for i in sorted(candidates, key=lambda i: i.active_since)]


class InMemoryDelegateRepository(DelegateRepository):
    """Delegation store held in process memory"""

    def __init__(self):
        self._store: _VersionedStore[ApprovalDelegate] = _VersionedStore(
            lambda d: d.delegate_record_id, "Delegation"
        )

    def save(self, delegate: ApprovalDelegate, expected_version: Optional[int] = None) -> ApprovalDelegate:
        return self._store.save(delegate, expected_version)

    def find(self, delegate_record_id: str) -> Optional[ApprovalDelegate]:
        return self._store.find(delegate_record_id)

    def find_active_for(self, organization_id: str, delegator_ids: Iterable[str]) -> List[ApprovalDelegate]:
        wanted = set(delegator_ids)
        records = self._store.select(
            lambda d: d.organization_id == organization_id and d.is_active and d.delegator_id in wanted
        )
        return sorted(records, key=lambda d: d.created_at, reverse=True)
