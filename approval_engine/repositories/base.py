"""Repository Interfaces - Persistence collaborator contracts

save() is a conditional write: without expected_version it inserts a new
record, with it the stored version must match or ConcurrentModificationError
is raised. A successful update returns the record with its version bumped.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..domain.models import ApprovalDelegate, Instance, Page, Template
from ..domain.errors import (
    DelegateNotFoundError, InstanceNotFoundError, TemplateNotFoundError, ValidationError
)

TEMPLATE_FILTERS = frozenset({"category", "is_default", "is_active"})
INSTANCE_FILTERS = frozenset({"status", "template_id", "requester_id", "category", "awaiting_approver"})

MAX_PAGE_SIZE = 200


def validate_page(skip: int, limit: int) -> None:
    if skip < 0:
        raise ValidationError("skip must be >= 0", details={"skip": skip})
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(
            f"limit must be between 1 and {MAX_PAGE_SIZE}",
            details={"limit": limit}
        )


def normalize_filters(filters: Optional[Dict[str, Any]], allowed: Iterable[str]) -> Dict[str, Any]:
    """
    Validate filter keys and unwrap enum values

    List values mean "any of"; None values are dropped.
    """
    allowed = frozenset(allowed)
    normalized: Dict[str, Any] = {}
    for key, value in (filters or {}).items():
        if key not in allowed:
            raise ValidationError(
                f"Unsupported filter: {key}",
                details={"allowed": sorted(allowed)}
            )
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            normalized[key] = [v.value if isinstance(v, Enum) else v for v in value]
        else:
            normalized[key] = value.value if isinstance(value, Enum) else value
    return normalized


class TemplateRepository(ABC):
    """Template persistence"""

    @abstractmethod
    def save(self, template: Template, expected_version: Optional[int] = None) -> Template:
        """Insert or conditionally update a template"""

    @abstractmethod
    def find(self, template_id: str) -> Optional[Template]:
        """Get template by ID"""

    @abstractmethod
    def query(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Template]:
        """List templates of an organization, newest first"""

    @abstractmethod
    def set_default(self, template_id: str, at: datetime) -> Template:
        """
        Make the template the only default of its organization + category

        Clearing the previous default and flagging the new one happen as one
        store-level operation; every touched record gets its version bumped.
        Raises TemplateNotFoundError for an unknown template.
        """

    def get_or_raise(self, template_id: str) -> Template:
        """Get template by ID or raise error"""
        template = self.find(template_id)
        if not template:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        return template


class InstanceRepository(ABC):
    """Approval instance persistence"""

    @abstractmethod
    def save(self, instance: Instance, expected_version: Optional[int] = None) -> Instance:
        """Insert or conditionally update an instance"""

    @abstractmethod
    def find(self, instance_id: str) -> Optional[Instance]:
        """Get instance by ID"""

    @abstractmethod
    def query(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Instance]:
        """List instances of an organization, newest first"""

    @abstractmethod
    def find_due_instance_ids(self, now: datetime) -> List[str]:
        """In-progress instances whose active step deadline is before now"""

    @abstractmethod
    def find_reminder_candidate_ids(self, active_before: datetime) -> List[str]:
        """In-progress instances whose active step was activated before the cutoff"""

    def get_or_raise(self, instance_id: str) -> Instance:
        """Get instance by ID or raise error"""
        instance = self.find(instance_id)
        if not instance:
            raise InstanceNotFoundError(f"Instance {instance_id} not found")
        return instance


class DelegateRepository(ABC):
    """Approval delegation persistence"""

    @abstractmethod
    def save(self, delegate: ApprovalDelegate, expected_version: Optional[int] = None) -> ApprovalDelegate:
        """Insert or conditionally update a delegation"""

    @abstractmethod
    def find(self, delegate_record_id: str) -> Optional[ApprovalDelegate]:
        """Get delegation by ID"""

    @abstractmethod
    def find_active_for(self, organization_id: str, delegator_ids: Iterable[str]) -> List[ApprovalDelegate]:
        """Active delegation records of the given delegators, newest first"""

    def get_or_raise(self, delegate_record_id: str) -> ApprovalDelegate:
        delegate = self.find(delegate_record_id)
        if not delegate:
            raise DelegateNotFoundError(f"Delegation {delegate_record_id} not found")
        return delegate
