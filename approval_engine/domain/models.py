"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field, ConfigDict, computed_field, field_validator, model_validator

from .context import ContextValue
from .enums import (
    Role, InstanceStatus, StepStatus, DecisionOutcome, ConditionOperator,
    TimeoutPolicy, RejectionPolicy, WorkflowEventType, NotificationStatus
)


# Explicit "field is missing" literal for equals / not_equals conditions
ABSENT = "$absent"

SYSTEM_ACTOR = "system"

T = TypeVar("T")


# ============================================================================
# Condition & Step Definition
# ============================================================================

class Condition(BaseModel):
    """Predicate gating whether a step applies to a request"""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., min_length=1, description="Dotted path into the context")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value to compare against")

    @model_validator(mode="after")
    def _check_in_operand(self) -> "Condition":
        if self.operator == ConditionOperator.IN and not isinstance(self.value, (list, tuple)):
            raise ValueError("'in' conditions need a list value")
        return self


class StepDefinition(BaseModel):
    """One approval stage of a template"""
    model_config = ConfigDict(extra="forbid")

    step_number: int = Field(..., ge=0, description="Evaluation order, unique within a template")
    name: str = Field(..., min_length=1, description="Display name")
    description: Optional[str] = None
    approver_roles: List[Role] = Field(default_factory=list, description="Roles whose holders may decide")
    approver_ids: List[str] = Field(default_factory=list, description="Explicit approver principal ids")
    conditions: List[Condition] = Field(default_factory=list, description="All must hold for the step to apply")
    is_parallel: bool = Field(default=False)
    required_approvals: Optional[int] = Field(None, ge=1, description="Quorum threshold")
    auto_approve: bool = Field(default=False, description="Resolve as approved without decisions")
    timeout_hours: Optional[float] = Field(None, gt=0, description="Deadline after activation")
    on_timeout: TimeoutPolicy = Field(default=TimeoutPolicy.ESCALATE_REJECT)
    rejection_policy: RejectionPolicy = Field(default=RejectionPolicy.ANY)

    @field_validator("approver_roles", "approver_ids")
    @classmethod
    def _dedupe(cls, values: List[Any]) -> List[Any]:
        return list(dict.fromkeys(values))

    @model_validator(mode="after")
    def _check_approvers(self) -> "StepDefinition":
        if not self.auto_approve and not self.approver_roles and not self.approver_ids:
            raise ValueError(f"Step {self.step_number} needs approver_roles or approver_ids")
        return self


def _ordered_unique_steps(steps: List[StepDefinition]) -> List[StepDefinition]:
    """Reject duplicate step numbers and return steps in evaluation order"""
    numbers = [s.step_number for s in steps]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate step numbers: {duplicates}")
    return sorted(steps, key=lambda s: s.step_number)


class TemplateDefinition(BaseModel):
    """Caller-supplied template content for create/update"""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    steps: List[StepDefinition] = Field(..., min_length=1)
    is_default: bool = Field(default=False)
    is_active: bool = Field(default=True)

    @field_validator("steps")
    @classmethod
    def _check_steps(cls, steps: List[StepDefinition]) -> List[StepDefinition]:
        return _ordered_unique_steps(steps)


class Template(BaseModel):
    """Approval workflow template"""
    model_config = ConfigDict(extra="ignore")

    template_id: str = Field(..., description="Unique template ID")
    organization_id: str = Field(..., description="Owning organization")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    steps: List[StepDefinition] = Field(..., min_length=1)
    is_active: bool = Field(default=True)
    is_default: bool = Field(default=False)
    created_by: str = Field(..., description="Creator principal id")
    created_at: datetime
    updated_at: datetime
    revision: int = Field(default=1, description="Incremented on every content edit")
    version: int = Field(default=1, description="Optimistic concurrency version")

    @field_validator("steps")
    @classmethod
    def _check_steps(cls, steps: List[StepDefinition]) -> List[StepDefinition]:
        return _ordered_unique_steps(steps)


# ============================================================================
# Runtime: Decisions, Step Executions, Instances
# ============================================================================

class Decision(BaseModel):
    """One approver's decision on a step execution"""
    model_config = ConfigDict(extra="forbid")

    approver_id: str
    outcome: DecisionOutcome
    comment: Optional[str] = None
    decided_at: datetime
    on_behalf_of: Optional[str] = Field(None, description="Original approver when acting as delegate")
    is_system: bool = Field(default=False, description="Recorded by the engine (auto-approve, timeout)")


class StepExecution(BaseModel):
    """Runtime state of one applicable step"""
    model_config = ConfigDict(extra="forbid")

    step_number: int
    name: str
    status: StepStatus = Field(default=StepStatus.PENDING)
    eligible_approvers: List[str] = Field(default_factory=list)
    delegations: Dict[str, str] = Field(default_factory=dict, description="Effective approver -> original approver")
    required_approvals: int = Field(default=1, ge=0)
    rejection_policy: RejectionPolicy = Field(default=RejectionPolicy.ANY)
    activated_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None
    decisions: List[Decision] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def decision_by(self, approver_id: str) -> Optional[Decision]:
        """Current decision of an approver, if any"""
        return next((d for d in self.decisions if d.approver_id == approver_id), None)

    def count(self, outcome: DecisionOutcome) -> int:
        return sum(1 for d in self.decisions if d.outcome == outcome)

    def undecided_approvers(self) -> List[str]:
        decided = {d.approver_id for d in self.decisions}
        return [a for a in self.eligible_approvers if a not in decided]


class Instance(BaseModel):
    """One run of a template against a request"""
    model_config = ConfigDict(extra="ignore")  # Derived query fields are stored alongside

    instance_id: str = Field(..., description="Unique instance ID")
    organization_id: str
    template_id: str
    template_name: str
    template_revision: int = Field(default=1)
    category: Optional[str] = None
    requester_id: str
    status: InstanceStatus = Field(default=InstanceStatus.PENDING)
    current_step_index: int = Field(default=0, ge=0)
    context: Dict[str, ContextValue] = Field(default_factory=dict)
    steps: List[StepDefinition] = Field(default_factory=list, description="Applicable step snapshot")
    executions: List[StepExecution] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    version: int = Field(default=1, description="Optimistic concurrency version")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def active_execution(self) -> Optional[StepExecution]:
        return next((e for e in self.executions if e.status == StepStatus.ACTIVE), None)

    def execution_for(self, step_number: int) -> Optional[StepExecution]:
        return next((e for e in self.executions if e.step_number == step_number), None)

    def definition_for(self, step_number: int) -> Optional[StepDefinition]:
        return next((s for s in self.steps if s.step_number == step_number), None)

    @computed_field
    @property
    def next_deadline(self) -> Optional[datetime]:
        """Deadline of the active step (indexed for the timeout sweep)"""
        active = self.active_execution
        return active.deadline if active else None

    @computed_field
    @property
    def active_since(self) -> Optional[datetime]:
        active = self.active_execution
        return active.activated_at if active else None

    @computed_field
    @property
    def awaiting_approvers(self) -> List[str]:
        """Eligible approvers of the active step who have not decided yet"""
        active = self.active_execution
        return active.undecided_approvers() if active else []


# ============================================================================
# Delegation
# ============================================================================

class ApprovalDelegate(BaseModel):
    """Approver delegation for a date window"""
    model_config = ConfigDict(extra="ignore")

    delegate_record_id: str
    organization_id: str
    delegator_id: str = Field(..., description="Principal whose approvals are delegated")
    delegate_id: str = Field(..., description="Principal acting on their behalf")
    start_at: datetime
    end_at: Optional[datetime] = None
    is_active: bool = Field(default=True)
    created_at: datetime
    version: int = Field(default=1)

    @model_validator(mode="after")
    def _check_window(self) -> "ApprovalDelegate":
        if self.delegator_id == self.delegate_id:
            raise ValueError("A principal cannot delegate to themselves")
        if self.end_at is not None and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        return self

    def is_effective(self, at: datetime) -> bool:
        if not self.is_active or self.start_at > at:
            return False
        return self.end_at is None or at <= self.end_at


# ============================================================================
# Events & Notification Outbox
# ============================================================================

class WorkflowEvent(BaseModel):
    """State-change event handed to the notification collaborator"""
    model_config = ConfigDict(extra="forbid")

    event_id: str
    type: WorkflowEventType
    instance_id: str
    organization_id: str
    step_number: Optional[int] = None
    outcome: Optional[str] = None
    actor_id: Optional[str] = None
    recipient_ids: List[str] = Field(default_factory=list)
    timestamp: datetime


class NotificationOutbox(BaseModel):
    """Outbox row written for each published event"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    event: WorkflowEvent
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    retry_count: int = Field(default=0)
    created_at: datetime


# ============================================================================
# Pagination
# ============================================================================

class Page(BaseModel, Generic[T]):
    """One page of query results"""
    items: List[T] = Field(default_factory=list)
    total: int = 0
    skip: int = 0
    limit: int = 50
