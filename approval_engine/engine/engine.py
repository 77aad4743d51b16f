"""
Workflow Engine - The Brain of the System

This module contains the WorkflowEngine class that owns every approval
instance state transition.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with repositories, directory and publisher collaborators

2. TEMPLATES & DELEGATIONS
   - Thin pass-through to TemplateService / DelegateService

3. INSTANCE CREATION
   - create_instance: resolve steps and approver pools, activate step 0
   - create_instance_for_category: same, using the category default

4. ACTION HANDLERS
   - submit_decision: approve / reject the targeted step
   - reassign_decision: hand a pending decision to another principal
   - cancel_instance: requester or elevated role

5. SWEEPS
   - sweep_timeouts: apply the timeout policy of overdue steps
   - send_reminders: remind undecided approvers of long-running steps

6. TRANSITION LOGIC
   - _transition: lock, load, mutate a copy, save once, publish
   - _activate / _advance / _resolve_instance

=============================================================================
CONCURRENCY
=============================================================================

Every mutation of an existing instance runs under the per-instance lock and
is persisted with an optimistic version check. A version conflict re-runs
the whole transition against fresh state, up to max_conflict_retries times.
Events are published only after the save succeeds.

=============================================================================
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..config.settings import settings
from ..domain.context import build_context
from ..domain.enums import (
    DecisionOutcome, InstanceStatus, StepStatus, TimeoutPolicy, WorkflowEventType
)
from ..domain.errors import (
    ConcurrentModificationError, DomainError, ForbiddenError, InternalError,
    InvalidStateError, NoApplicableStepsError, StepNotActiveError, StepNotFoundError,
    ValidationError
)
from ..domain.models import (
    SYSTEM_ACTOR, ApprovalDelegate, Instance, Page, StepDefinition, StepExecution,
    Template, WorkflowEvent
)
from ..repositories.base import (
    DelegateRepository, InstanceRepository, TemplateRepository, validate_page
)
from ..repositories.memory_repo import InMemoryDelegateRepository
from ..services.delegate_service import DelegateService
from ..services.directory_service import Directory
from ..services.notification_service import NotificationPublisher
from ..services.template_service import DefinitionInput, TemplateService
from .locking import KeyedLockManager
from .permission_guard import PermissionGuard
from .quorum_aggregator import QuorumAggregator
from .step_resolver import StepResolver
from .timeout_scheduler import TimeoutScheduler
from ..utils.idgen import generate_event_id, generate_instance_id
from ..utils.time import add_hours, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Mutation callback: (working copy, now, event sink) -> changed
Mutation = Callable[[Instance, datetime, List[WorkflowEvent]], bool]

_INSTANCE_EVENTS = {
    InstanceStatus.APPROVED: WorkflowEventType.INSTANCE_APPROVED,
    InstanceStatus.REJECTED: WorkflowEventType.INSTANCE_REJECTED,
    InstanceStatus.EXPIRED: WorkflowEventType.INSTANCE_EXPIRED,
    InstanceStatus.CANCELLED: WorkflowEventType.INSTANCE_CANCELLED,
}


class WorkflowEngine:
    """
    Core approval engine - owns all instance state transitions

    Collaborators are injected; nothing here talks to a database, an HTTP
    API or a mail server directly.
    """

    def __init__(
        self,
        template_repo: TemplateRepository,
        instance_repo: InstanceRepository,
        directory: Directory,
        publisher: NotificationPublisher,
        delegate_repo: Optional[DelegateRepository] = None,
        clock: Callable[[], datetime] = utc_now,
        lock_timeout_seconds: Optional[float] = None,
        max_conflict_retries: Optional[int] = None,
        reminder_interval_hours: Optional[float] = None
    ):
        self.template_repo = template_repo
        self.instance_repo = instance_repo
        self.delegate_repo = delegate_repo or InMemoryDelegateRepository()
        self.directory = directory
        self.publisher = publisher
        self.clock = clock
        self.max_conflict_retries = (
            settings.max_conflict_retries if max_conflict_retries is None else max_conflict_retries
        )

        self.locks = KeyedLockManager(
            settings.lock_timeout_seconds if lock_timeout_seconds is None else lock_timeout_seconds
        )
        self.permission_guard = PermissionGuard(directory)
        self.step_resolver = StepResolver(directory, self.delegate_repo)
        self.quorum = QuorumAggregator()
        self.timeouts = TimeoutScheduler(
            settings.reminder_interval_hours if reminder_interval_hours is None else reminder_interval_hours
        )
        self.templates = TemplateService(template_repo, self.permission_guard, self.locks, clock)
        self.delegates = DelegateService(self.delegate_repo, self.permission_guard, clock)

    # =========================================================================
    # TEMPLATES & DELEGATIONS
    # =========================================================================

    def create_template(self, organization_id: str, definition: DefinitionInput, creator_id: str) -> Template:
        return self.templates.create_template(organization_id, definition, creator_id)

    def update_template(self, template_id: str, definition: DefinitionInput, actor_id: str) -> Template:
        return self.templates.update_template(template_id, definition, actor_id)

    def set_template_active(self, template_id: str, is_active: bool, actor_id: str) -> Template:
        return self.templates.set_template_active(template_id, is_active, actor_id)

    def get_template(self, template_id: str) -> Template:
        return self.templates.get_template(template_id)

    def list_templates(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Template]:
        return self.templates.list_templates(organization_id, filters, skip, limit)

    def get_default_template(self, organization_id: str, category: Optional[str]) -> Template:
        return self.templates.get_default_template(organization_id, category)

    def create_delegate(
        self,
        organization_id: str,
        delegator_id: str,
        delegate_id: str,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        actor_id: Optional[str] = None
    ) -> ApprovalDelegate:
        return self.delegates.create_delegate(
            organization_id, delegator_id, delegate_id, start_at, end_at, actor_id
        )

    def revoke_delegate(self, delegate_record_id: str, actor_id: str) -> ApprovalDelegate:
        return self.delegates.revoke_delegate(delegate_record_id, actor_id)

    # =========================================================================
    # INSTANCE CREATION
    # =========================================================================

    def create_instance(
        self,
        template_id: str,
        context: Optional[Mapping[str, Any]],
        requester_id: str
    ) -> Instance:
        """
        Instantiate a template against a request context

        Nothing is persisted if any step cannot be staffed. Auto-approve
        steps at the front of the instance resolve before this returns.

        Raises:
            TemplateNotFoundError: Unknown template
            InvalidStateError: Template is inactive
            NoApplicableStepsError: Every step was filtered out
            NoEligibleApproversError: A step resolved to an empty approver pool
            ValidationError: Malformed context or unreachable quorum
        """
        template = self.template_repo.get_or_raise(template_id)
        if not template.organization_id:
            raise ValidationError(f"Template {template_id} has no organization")
        if not template.is_active:
            raise InvalidStateError(
                f"Template {template_id} is inactive",
                details={"template_id": template_id}
            )

        request_context = build_context(context)
        now = self.clock()

        try:
            applicable = self.step_resolver.resolve_applicable_steps(template.steps, request_context)
            if not applicable:
                raise NoApplicableStepsError(
                    f"No step of template {template_id} applies to this request",
                    details={"template_id": template_id}
                )

            executions = [self._plan_execution(step, template.organization_id, now) for step in applicable]

            instance = Instance(
                instance_id=generate_instance_id(),
                organization_id=template.organization_id,
                template_id=template.template_id,
                template_name=template.name,
                template_revision=template.revision,
                category=template.category,
                requester_id=requester_id,
                status=InstanceStatus.PENDING,
                context=request_context,
                steps=[s.model_copy(deep=True) for s in applicable],
                executions=executions,
                created_at=now,
                updated_at=now
            )

            events: List[WorkflowEvent] = [
                self._event(WorkflowEventType.INSTANCE_CREATED, instance, now, actor_id=requester_id)
            ]
            instance.status = InstanceStatus.IN_PROGRESS
            self._activate(instance, 0, now, events)

            created = self.instance_repo.save(instance)
        except DomainError:
            raise
        except Exception as e:
            logger.exception(
                f"Unexpected failure creating instance from template {template_id}",
                extra={"template_id": template_id}
            )
            raise InternalError("Failed to create approval instance", details={"template_id": template_id}) from e

        logger.info(
            f"Created instance {created.instance_id} from template {template_id} "
            f"with steps {[s.step_number for s in created.steps]}",
            extra={
                "instance_id": created.instance_id,
                "template_id": template_id,
                "organization_id": created.organization_id,
                "status": created.status.value
            }
        )
        self._publish(events)
        return created

    def create_instance_for_category(
        self,
        organization_id: str,
        category: Optional[str],
        context: Optional[Mapping[str, Any]],
        requester_id: str
    ) -> Instance:
        """Instantiate the organization's default template for a category"""
        template = self.templates.get_default_template(organization_id, category)
        return self.create_instance(template.template_id, context, requester_id)

    def _plan_execution(self, step: StepDefinition, organization_id: str, now: datetime) -> StepExecution:
        """Resolve approvers (after delegation) and the quorum threshold of one step"""
        if step.auto_approve:
            return StepExecution(
                step_number=step.step_number,
                name=step.name,
                required_approvals=0,
                rejection_policy=step.rejection_policy
            )

        pool = self.step_resolver.eligible_approvers(step, organization_id)
        effective = self.step_resolver.apply_delegations(pool, organization_id, now)

        required = self.quorum.threshold(step, len(effective))
        if required > len(effective):
            raise ValidationError(
                f"Step {step.step_number} requires {required} approvals but only "
                f"{len(effective)} approvers are eligible",
                details={"step_number": step.step_number, "required_approvals": required,
                         "eligible_count": len(effective)}
            )

        return StepExecution(
            step_number=step.step_number,
            name=step.name,
            eligible_approvers=sorted(effective),
            delegations={e: o for e, o in effective.items() if e != o},
            required_approvals=required,
            rejection_policy=step.rejection_policy
        )

    # =========================================================================
    # ACTION HANDLERS
    # =========================================================================

    def submit_decision(
        self,
        instance_id: str,
        approver_id: str,
        outcome: DecisionOutcome,
        comment: Optional[str] = None,
        step_number: Optional[int] = None
    ) -> Instance:
        """
        Record an approve / reject decision

        Args:
            instance_id: Target instance
            approver_id: Deciding principal (the effective approver when delegated)
            outcome: APPROVE or REJECT
            comment: Optional free text
            step_number: Step to decide; defaults to the step that is current
                when the call is made

        Raises:
            StepNotActiveError: Targeted step is not active (unless this repeats
                the approver's decision on an already resolved step)
            UnauthorizedApproverError: Approver is not eligible for the step
        """
        try:
            outcome = DecisionOutcome(outcome)
        except ValueError:
            raise ValidationError(
                f"Unknown decision outcome: {outcome}",
                details={"allowed": [o.value for o in DecisionOutcome]}
            )
        target_step = self._current_step_number(instance_id) if step_number is None else step_number

        def mutate(instance: Instance, now: datetime, events: List[WorkflowEvent]) -> bool:
            execution = self._target_execution(instance, target_step)

            if execution.status != StepStatus.ACTIVE:
                previous = execution.decision_by(approver_id)
                if execution.is_terminal and previous is not None and previous.outcome == outcome:
                    return False
                raise StepNotActiveError(
                    f"Step {execution.step_number} is {execution.status.value}",
                    details={"step_number": execution.step_number, "status": execution.status.value}
                )

            result = self.quorum.record_decision(execution, approver_id, outcome, comment, now)
            if not result.changed:
                return False

            events.append(self._event(
                WorkflowEventType.DECISION_RECORDED, instance, now,
                step_number=execution.step_number, outcome=outcome.value,
                actor_id=approver_id, recipient_ids=[instance.requester_id]
            ))

            if result.status == StepStatus.APPROVED:
                events.append(self._event(
                    WorkflowEventType.STEP_APPROVED, instance, now,
                    step_number=execution.step_number, outcome=result.status.value,
                    actor_id=approver_id, recipient_ids=[instance.requester_id]
                ))
                self._advance(instance, now, events)
            elif result.status == StepStatus.REJECTED:
                events.append(self._event(
                    WorkflowEventType.STEP_REJECTED, instance, now,
                    step_number=execution.step_number, outcome=result.status.value,
                    actor_id=approver_id, recipient_ids=[instance.requester_id]
                ))
                self._resolve_instance(instance, InstanceStatus.REJECTED, now, events, actor_id=approver_id)
            return True

        instance, _ = self._transition(instance_id, mutate)
        return instance

    def reassign_decision(
        self,
        instance_id: str,
        approver_id: str,
        delegate_to_id: str,
        step_number: Optional[int] = None,
        actor_id: Optional[str] = None
    ) -> Instance:
        """
        Hand an approver's pending decision to another principal

        The approver (or an elevated role acting for them) gives up their
        seat on the step; delegate_to_id then decides on behalf of the
        original approver.
        """
        actor_id = actor_id or approver_id
        target_step = self._current_step_number(instance_id) if step_number is None else step_number

        def mutate(instance: Instance, now: datetime, events: List[WorkflowEvent]) -> bool:
            if not self.permission_guard.can_manage_delegation(actor_id, approver_id, instance.organization_id):
                raise ForbiddenError(
                    "You cannot reassign another approver's decision",
                    details={"actor_id": actor_id, "approver_id": approver_id}
                )
            execution = self._target_execution(instance, target_step)
            original = self.quorum.reassign(execution, approver_id, delegate_to_id)

            events.append(self._event(
                WorkflowEventType.DECISION_REASSIGNED, instance, now,
                step_number=execution.step_number, actor_id=actor_id,
                recipient_ids=[delegate_to_id]
            ))
            logger.info(
                f"Step {execution.step_number} decision of {approver_id} reassigned to {delegate_to_id}",
                extra={"instance_id": instance.instance_id, "approver_id": original, "actor_id": actor_id}
            )
            return True

        instance, _ = self._transition(instance_id, mutate)
        return instance

    def cancel_instance(self, instance_id: str, actor_id: str) -> Instance:
        """Cancel a pending / in-progress instance; cancelling twice is a no-op"""

        def mutate(instance: Instance, now: datetime, events: List[WorkflowEvent]) -> bool:
            if not self.permission_guard.can_cancel(actor_id, instance):
                raise ForbiddenError(
                    "Only the requester or a partner / admin can cancel this request",
                    details={"actor_id": actor_id, "instance_id": instance.instance_id}
                )
            if instance.status == InstanceStatus.CANCELLED:
                return False
            if instance.is_terminal:
                raise InvalidStateError(
                    f"Cannot cancel instance in status {instance.status.value}",
                    details={"status": instance.status.value}
                )

            waiting = instance.awaiting_approvers
            active = instance.active_execution
            if active is not None:
                active.status = StepStatus.CANCELLED
                active.resolved_at = now

            instance.cancelled_by = actor_id
            self._resolve_instance(
                instance, InstanceStatus.CANCELLED, now, events,
                actor_id=actor_id, extra_recipients=waiting
            )
            return True

        instance, changed = self._transition(instance_id, mutate)
        if changed:
            logger.info(
                f"Instance {instance_id} cancelled by {actor_id}",
                extra={"instance_id": instance_id, "actor_id": actor_id}
            )
        return instance

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_instance(self, instance_id: str) -> Instance:
        """Get instance by ID"""
        return self.instance_repo.get_or_raise(instance_id)

    def list_instances(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Instance]:
        """List instances of an organization, newest first"""
        validate_page(skip, limit)
        return self.instance_repo.query(organization_id, filters, skip=skip, limit=limit)

    def pending_approvals_for(
        self,
        organization_id: str,
        principal_id: str,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Instance]:
        """In-progress instances waiting on a decision from this principal"""
        validate_page(skip, limit)
        return self.instance_repo.query(
            organization_id,
            {"status": InstanceStatus.IN_PROGRESS, "awaiting_approver": principal_id},
            skip=skip,
            limit=limit
        )

    # =========================================================================
    # SWEEPS
    # =========================================================================

    def sweep_timeouts(self) -> List[str]:
        """
        Apply the timeout policy of every overdue active step

        Returns:
            IDs of the instances that changed
        """
        now = self.clock()
        due_ids = self.instance_repo.find_due_instance_ids(now)
        if not due_ids:
            return []

        logger.info(f"Timeout sweep found {len(due_ids)} overdue instances")
        changed_ids = []
        for instance_id in due_ids:
            try:
                _, changed = self._transition(instance_id, self._expire_overdue)
                if changed:
                    changed_ids.append(instance_id)
            except Exception as e:
                logger.error(
                    f"Timeout sweep failed for instance {instance_id}: {e}",
                    extra={"instance_id": instance_id}
                )
        return changed_ids

    def _expire_overdue(self, instance: Instance, now: datetime, events: List[WorkflowEvent]) -> bool:
        if instance.status != InstanceStatus.IN_PROGRESS:
            return False
        overdue = self.timeouts.check_deadlines(instance, now)
        if not overdue:
            return False

        for execution in overdue:
            definition = instance.definition_for(execution.step_number)
            if definition is not None and definition.on_timeout == TimeoutPolicy.AUTO_APPROVE_ON_TIMEOUT:
                self.quorum.resolve_by_system(execution, StepStatus.APPROVED, now, comment="Approved on timeout")
                events.append(self._event(
                    WorkflowEventType.STEP_APPROVED, instance, now,
                    step_number=execution.step_number, outcome=StepStatus.APPROVED.value,
                    actor_id=SYSTEM_ACTOR, recipient_ids=[instance.requester_id]
                ))
                logger.info(
                    f"Step {execution.step_number} auto-approved on timeout",
                    extra={"instance_id": instance.instance_id, "step_number": execution.step_number}
                )
                self._advance(instance, now, events)
            else:
                self.quorum.resolve_by_system(execution, StepStatus.EXPIRED, now)
                events.append(self._event(
                    WorkflowEventType.STEP_EXPIRED, instance, now,
                    step_number=execution.step_number, outcome=StepStatus.EXPIRED.value,
                    actor_id=SYSTEM_ACTOR,
                    recipient_ids=[instance.requester_id] + execution.undecided_approvers()
                ))
                logger.info(
                    f"Step {execution.step_number} expired",
                    extra={"instance_id": instance.instance_id, "step_number": execution.step_number}
                )
                self._resolve_instance(instance, InstanceStatus.EXPIRED, now, events, actor_id=SYSTEM_ACTOR)
        return True

    def send_reminders(self) -> List[str]:
        """
        Remind undecided approvers of steps that have waited a full
        reminder interval, at most once per interval

        Returns:
            IDs of the instances for which reminders were sent
        """
        now = self.clock()
        cutoff = add_hours(now, -self.timeouts.reminder_interval_hours)
        candidate_ids = self.instance_repo.find_reminder_candidate_ids(cutoff)

        reminded = []
        for instance_id in candidate_ids:
            try:
                _, changed = self._transition(instance_id, self._remind)
                if changed:
                    reminded.append(instance_id)
            except Exception as e:
                logger.error(
                    f"Reminder failed for instance {instance_id}: {e}",
                    extra={"instance_id": instance_id}
                )

        if reminded:
            logger.info(f"Sent approval reminders for {len(reminded)} instances")
        return reminded

    def _remind(self, instance: Instance, now: datetime, events: List[WorkflowEvent]) -> bool:
        active = instance.active_execution
        if instance.status != InstanceStatus.IN_PROGRESS or active is None:
            return False
        if not self.timeouts.due_for_reminder(active, now):
            return False

        active.reminder_sent_at = now
        events.append(self._event(
            WorkflowEventType.APPROVAL_REMINDER, instance, now,
            step_number=active.step_number, actor_id=SYSTEM_ACTOR,
            recipient_ids=active.undecided_approvers()
        ))
        return True

    # =========================================================================
    # TRANSITION LOGIC
    # =========================================================================

    def _transition(self, instance_id: str, mutate: Mutation) -> Tuple[Instance, bool]:
        """
        Run one state transition under the instance lock

        The mutation works on a deep copy; the result is saved once with a
        version check. Conflicts re-run the mutation on fresh state.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.locks.hold(instance_id):
                    events: List[WorkflowEvent] = []
                    try:
                        current = self.instance_repo.get_or_raise(instance_id)
                        working = current.model_copy(deep=True)
                        now = self.clock()
                        changed = mutate(working, now, events)
                        if not changed:
                            return current, False
                        working.updated_at = now
                        saved = self.instance_repo.save(working, expected_version=current.version)
                    except DomainError:
                        raise
                    except Exception as e:
                        logger.exception(
                            f"Unexpected failure in transition of instance {instance_id}",
                            extra={"instance_id": instance_id}
                        )
                        raise InternalError(
                            "Approval transition failed",
                            details={"instance_id": instance_id}
                        ) from e
            except ConcurrentModificationError:
                if attempt > self.max_conflict_retries:
                    raise
                logger.warning(
                    f"Concurrent modification on instance {instance_id}, retrying",
                    extra={"instance_id": instance_id, "attempt": attempt}
                )
                continue

            self._publish(events)
            return saved, True

    def _current_step_number(self, instance_id: str) -> int:
        """Step number of the current step, read before entering the critical section"""
        try:
            instance = self.instance_repo.get_or_raise(instance_id)
        except DomainError:
            raise
        except Exception as e:
            logger.exception(
                f"Failed to load instance {instance_id}",
                extra={"instance_id": instance_id}
            )
            raise InternalError("Approval transition failed", details={"instance_id": instance_id}) from e
        return instance.executions[instance.current_step_index].step_number

    def _target_execution(self, instance: Instance, step_number: int) -> StepExecution:
        execution = instance.execution_for(step_number)
        if execution is None:
            raise StepNotFoundError(
                f"Step {step_number} is not part of instance {instance.instance_id}",
                details={"step_number": step_number}
            )
        return execution

    def _activate(self, instance: Instance, index: int, now: datetime, events: List[WorkflowEvent]) -> None:
        """Activate the step at index; auto-approve steps resolve and cascade"""
        execution = instance.executions[index]
        definition = instance.steps[index]

        instance.current_step_index = index
        execution.status = StepStatus.ACTIVE
        execution.activated_at = now
        execution.deadline = self.timeouts.deadline_for(definition, now)

        if definition.auto_approve:
            self.quorum.resolve_by_system(execution, StepStatus.APPROVED, now, comment="Auto-approved")
            events.append(self._event(
                WorkflowEventType.STEP_APPROVED, instance, now,
                step_number=execution.step_number, outcome=StepStatus.APPROVED.value,
                actor_id=SYSTEM_ACTOR, recipient_ids=[instance.requester_id]
            ))
            self._advance(instance, now, events)
            return

        events.append(self._event(
            WorkflowEventType.STEP_ACTIVATED, instance, now,
            step_number=execution.step_number,
            recipient_ids=list(execution.eligible_approvers)
        ))

    def _advance(self, instance: Instance, now: datetime, events: List[WorkflowEvent]) -> None:
        """Move past the current (approved) step, or approve the instance"""
        next_index = instance.current_step_index + 1
        if next_index < len(instance.executions):
            self._activate(instance, next_index, now, events)
        else:
            self._resolve_instance(instance, InstanceStatus.APPROVED, now, events)

    def _resolve_instance(
        self,
        instance: Instance,
        status: InstanceStatus,
        now: datetime,
        events: List[WorkflowEvent],
        actor_id: Optional[str] = None,
        extra_recipients: Optional[List[str]] = None
    ) -> None:
        instance.status = status
        instance.resolved_at = now
        recipients = [instance.requester_id] + [
            r for r in (extra_recipients or []) if r != instance.requester_id
        ]
        events.append(self._event(
            _INSTANCE_EVENTS[status], instance, now,
            outcome=status.value, actor_id=actor_id, recipient_ids=recipients
        ))
        logger.info(
            f"Instance {instance.instance_id} resolved {status.value}",
            extra={"instance_id": instance.instance_id, "status": status.value}
        )

    def _event(
        self,
        event_type: WorkflowEventType,
        instance: Instance,
        now: datetime,
        step_number: Optional[int] = None,
        outcome: Optional[str] = None,
        actor_id: Optional[str] = None,
        recipient_ids: Optional[List[str]] = None
    ) -> WorkflowEvent:
        return WorkflowEvent(
            event_id=generate_event_id(),
            type=event_type,
            instance_id=instance.instance_id,
            organization_id=instance.organization_id,
            step_number=step_number,
            outcome=outcome,
            actor_id=actor_id,
            recipient_ids=recipient_ids or [],
            timestamp=now
        )

    def _publish(self, events: List[WorkflowEvent]) -> None:
        """Fire-and-forget: a failing publisher never undoes a transition"""
        for event in events:
            try:
                self.publisher.publish(event)
            except Exception as e:
                logger.error(
                    f"Failed to publish {event.type.value} event: {e}",
                    extra={"instance_id": event.instance_id, "event_type": event.type.value}
                )
