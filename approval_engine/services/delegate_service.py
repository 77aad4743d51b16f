"""Delegate Service - Approval delegation records"""
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ForbiddenError, ValidationError
from ..domain.models import ApprovalDelegate
from ..engine.permission_guard import PermissionGuard
from ..repositories.base import DelegateRepository
from ..utils.idgen import generate_delegate_id
from ..utils.time import ensure_utc, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DelegateService:
    """Service for delegation operations"""

    def __init__(
        self,
        repo: DelegateRepository,
        permission_guard: PermissionGuard,
        clock: Callable[[], datetime] = utc_now
    ):
        self.repo = repo
        self.permission_guard = permission_guard
        self.clock = clock

    def create_delegate(
        self,
        organization_id: str,
        delegator_id: str,
        delegate_id: str,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        actor_id: Optional[str] = None
    ) -> ApprovalDelegate:
        """
        Delegate a principal's approvals to another principal

        Only affects approver pools resolved after the delegation starts;
        running instances keep their resolved approvers.
        """
        actor_id = actor_id or delegator_id
        if not self.permission_guard.can_manage_delegation(actor_id, delegator_id, organization_id):
            raise ForbiddenError(
                "You cannot delegate approvals on behalf of another principal",
                details={"actor_id": actor_id, "delegator_id": delegator_id}
            )

        now = self.clock()
        try:
            delegate = ApprovalDelegate(
                delegate_record_id=generate_delegate_id(),
                organization_id=organization_id,
                delegator_id=delegator_id,
                delegate_id=delegate_id,
                start_at=ensure_utc(start_at) if start_at else now,
                end_at=ensure_utc(end_at) if end_at else None,
                is_active=True,
                created_at=now
            )
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e, "Invalid delegation")

        created = self.repo.save(delegate)
        logger.info(
            f"Delegation {created.delegate_record_id}: {delegator_id} -> {delegate_id}",
            extra={"organization_id": organization_id, "actor_id": actor_id}
        )
        return created

    def revoke_delegate(self, delegate_record_id: str, actor_id: str) -> ApprovalDelegate:
        """Deactivate a delegation; revoking twice is a no-op"""
        delegate = self.repo.get_or_raise(delegate_record_id)
        if not self.permission_guard.can_manage_delegation(
            actor_id, delegate.delegator_id, delegate.organization_id
        ):
            raise ForbiddenError(
                "You cannot revoke this delegation",
                details={"actor_id": actor_id, "delegate_record_id": delegate_record_id}
            )
        if not delegate.is_active:
            return delegate

        return self.repo.save(
            delegate.model_copy(update={"is_active": False}),
            expected_version=delegate.version
        )

    def active_delegations(self, organization_id: str, delegator_id: str) -> List[ApprovalDelegate]:
        """Delegations of a principal that are in effect now"""
        now = self.clock()
        return [
            d for d in self.repo.find_active_for(organization_id, [delegator_id])
            if d.is_effective(now)
        ]
