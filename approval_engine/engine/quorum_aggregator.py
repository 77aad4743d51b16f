"""Quorum Aggregator - Fold approver decisions into a step outcome"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..domain.enums import DecisionOutcome, RejectionPolicy, StepStatus
from ..domain.errors import (
    InvalidStateError, StepAlreadyResolvedError, StepNotActiveError, UnauthorizedApproverError,
    ValidationError
)
from ..domain.models import SYSTEM_ACTOR, Decision, StepDefinition, StepExecution
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class StepOutcome(BaseModel):
    """Step status after a decision, and whether anything changed"""
    status: StepStatus
    changed: bool


class QuorumAggregator:
    """
    Record decisions on a step execution and resolve it

    - APPROVED once distinct approvals reach required_approvals
    - ANY rejection policy: a single reject resolves REJECTED
    - UNANIMOUS: REJECTED once every eligible approver rejected, or the
      approvers left can no longer reach the threshold
    - One decision per approver; a changed outcome replaces the earlier one
    """

    @staticmethod
    def threshold(step: StepDefinition, eligible_count: int) -> int:
        """Explicit quorum, else 1 for sequential steps and the whole pool for parallel ones"""
        if step.required_approvals is not None:
            return step.required_approvals
        if step.is_parallel:
            return eligible_count
        return 1

    def record_decision(
        self,
        execution: StepExecution,
        approver_id: str,
        outcome: DecisionOutcome,
        comment: Optional[str] = None,
        decided_at: Optional[datetime] = None
    ) -> StepOutcome:
        """
        Apply one approver's decision to the execution in place

        Raises:
            StepAlreadyResolvedError: Execution is terminal and this is not an
                identical resubmission
            StepNotActiveError: Execution has not been activated
            UnauthorizedApproverError: Approver is not in the eligible pool
        """
        outcome = DecisionOutcome(outcome)
        existing = execution.decision_by(approver_id)

        if execution.is_terminal:
            if existing is not None and existing.outcome == outcome:
                return StepOutcome(status=execution.status, changed=False)
            raise StepAlreadyResolvedError(
                f"Step {execution.step_number} is already {execution.status.value}",
                details={"step_number": execution.step_number, "status": execution.status.value}
            )

        if execution.status != StepStatus.ACTIVE:
            raise StepNotActiveError(
                f"Step {execution.step_number} is not active",
                details={"step_number": execution.step_number, "status": execution.status.value}
            )

        if approver_id not in execution.eligible_approvers:
            raise UnauthorizedApproverError(
                f"{approver_id} is not an eligible approver for step {execution.step_number}",
                details={"step_number": execution.step_number, "approver_id": approver_id}
            )

        if existing is not None and existing.outcome == outcome:
            return StepOutcome(status=execution.status, changed=False)

        decided_at = decided_at or utc_now()
        if existing is not None:
            execution.decisions = [d for d in execution.decisions if d.approver_id != approver_id]
        execution.decisions.append(Decision(
            approver_id=approver_id,
            outcome=outcome,
            comment=comment,
            decided_at=decided_at,
            on_behalf_of=execution.delegations.get(approver_id)
        ))

        status = self._aggregate(execution)
        if status != StepStatus.ACTIVE:
            execution.status = status
            execution.resolved_at = decided_at
            logger.info(
                f"Step {execution.step_number} resolved {status.value}",
                extra={"step_number": execution.step_number, "approver_id": approver_id, "status": status.value}
            )
        return StepOutcome(status=execution.status, changed=True)

    def _aggregate(self, execution: StepExecution) -> StepStatus:
        eligible = len(execution.eligible_approvers)
        approvals = execution.count(DecisionOutcome.APPROVE)
        rejections = execution.count(DecisionOutcome.REJECT)

        if execution.rejection_policy == RejectionPolicy.ANY:
            if rejections > 0:
                return StepStatus.REJECTED
        elif rejections >= eligible or eligible - rejections < execution.required_approvals:
            return StepStatus.REJECTED

        if approvals >= execution.required_approvals:
            return StepStatus.APPROVED
        return StepStatus.ACTIVE

    def reassign(self, execution: StepExecution, approver_id: str, delegate_to_id: str) -> str:
        """
        Hand an undecided approver's seat on the step to another principal

        Pool size and threshold are unchanged. The new approver decides on
        behalf of the principal the seat originally belonged to.

        Returns:
            The original approver of the seat

        Raises:
            StepNotActiveError: Execution is not active
            UnauthorizedApproverError: approver_id holds no seat on the step
            InvalidStateError: approver_id already decided
            ValidationError: delegate_to_id already holds a seat
        """
        if execution.status != StepStatus.ACTIVE:
            raise StepNotActiveError(
                f"Step {execution.step_number} is {execution.status.value}",
                details={"step_number": execution.step_number, "status": execution.status.value}
            )
        if approver_id not in execution.eligible_approvers:
            raise UnauthorizedApproverError(
                f"{approver_id} is not an eligible approver for step {execution.step_number}",
                details={"step_number": execution.step_number, "approver_id": approver_id}
            )
        if execution.decision_by(approver_id) is not None:
            raise InvalidStateError(
                f"{approver_id} already decided step {execution.step_number}",
                details={"step_number": execution.step_number, "approver_id": approver_id}
            )
        if delegate_to_id in execution.eligible_approvers:
            raise ValidationError(
                f"{delegate_to_id} is already an approver of step {execution.step_number}",
                details={"step_number": execution.step_number, "delegate_to_id": delegate_to_id}
            )

        original = execution.delegations.pop(approver_id, approver_id)
        execution.eligible_approvers = sorted(
            delegate_to_id if a == approver_id else a for a in execution.eligible_approvers
        )
        if delegate_to_id != original:
            execution.delegations[delegate_to_id] = original
        return original

    def resolve_by_system(
        self,
        execution: StepExecution,
        status: StepStatus,
        at: datetime,
        comment: Optional[str] = None
    ) -> StepOutcome:
        """Force a resolution (auto-approve, timeout); approvals are recorded as a system decision"""
        if execution.is_terminal:
            raise StepAlreadyResolvedError(
                f"Step {execution.step_number} is already {execution.status.value}",
                details={"step_number": execution.step_number, "status": execution.status.value}
            )
        if status == StepStatus.APPROVED:
            execution.decisions.append(Decision(
                approver_id=SYSTEM_ACTOR,
                outcome=DecisionOutcome.APPROVE,
                comment=comment,
                decided_at=at,
                is_system=True
            ))
        execution.status = status
        execution.resolved_at = at
        return StepOutcome(status=status, changed=True)
