"""Step Resolver - Applicable steps and approver pools for a request"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from ..domain.context import RequestContext
from ..domain.errors import NoEligibleApproversError
from ..domain.models import StepDefinition
from ..repositories.base import DelegateRepository
from ..services.directory_service import Directory
from .condition_evaluator import ConditionEvaluator
from ..utils.logger import get_logger

logger = get_logger(__name__)


class StepResolver:
    """
    Resolve which template steps apply to a request and who may decide them

    1. A step applies iff all its conditions hold against the context
    2. Eligible approvers = explicit approver_ids + holders of approver_roles
    3. Approvers with an active delegation are replaced by their delegate
    """

    def __init__(
        self,
        directory: Directory,
        delegate_repo: Optional[DelegateRepository] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None
    ):
        self.directory = directory
        self.delegate_repo = delegate_repo
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()

    def resolve_applicable_steps(
        self,
        template_steps: Iterable[StepDefinition],
        context: RequestContext
    ) -> List[StepDefinition]:
        """Steps whose conditions all hold, in ascending step-number order"""
        ordered = sorted(template_steps, key=lambda s: s.step_number)
        applicable = [
            step for step in ordered
            if self.condition_evaluator.evaluate_all(step.conditions, context)
        ]
        logger.debug(
            f"Applicable steps: {[s.step_number for s in applicable]} of {[s.step_number for s in ordered]}"
        )
        return applicable

    def eligible_approvers(self, step: StepDefinition, organization_id: str) -> Set[str]:
        """
        Union of explicit approver ids and role holders in the organization

        Raises:
            NoEligibleApproversError: If the pool is empty for a step that
                needs human decisions
        """
        approvers: Set[str] = set(step.approver_ids)
        if step.approver_roles:
            approvers |= self.directory.principals_with_roles(organization_id, step.approver_roles)

        if not approvers and not step.auto_approve:
            raise NoEligibleApproversError(
                f"Step {step.step_number} ({step.name}) has no eligible approvers",
                details={
                    "step_number": step.step_number,
                    "approver_roles": [r.value for r in step.approver_roles],
                    "approver_ids": list(step.approver_ids)
                }
            )
        return approvers

    def apply_delegations(
        self,
        approvers: Iterable[str],
        organization_id: str,
        at: datetime
    ) -> Dict[str, str]:
        """
        Substitute approvers who delegated their approvals at the given time

        Returns:
            Mapping of effective approver -> original approver. Approvers
            without a delegation map to themselves. A delegate who is already
            in the pool keeps deciding as themselves.
        """
        pool = sorted(set(approvers))
        if self.delegate_repo is None or not pool:
            return {a: a for a in pool}

        substitutes: Dict[str, str] = {}
        for record in self.delegate_repo.find_active_for(organization_id, pool):
            # Records come newest first; the first effective one wins
            if record.delegator_id not in substitutes and record.is_effective(at):
                substitutes[record.delegator_id] = record.delegate_id

        effective: Dict[str, str] = {a: a for a in pool if a not in substitutes}
        for original in pool:
            delegate = substitutes.get(original)
            if delegate is None or delegate in effective:
                continue
            effective[delegate] = original
            logger.info(
                f"Approver {original} delegated to {delegate}",
                extra={"approver_id": delegate, "organization_id": organization_id}
            )
        return effective
