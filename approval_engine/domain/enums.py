"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class Role(str, Enum):
    """Organization roles known to the directory"""
    PARTNER = "PARTNER"
    MANAGER = "MANAGER"
    ASSOCIATE = "ASSOCIATE"
    INTERN = "INTERN"
    ADMIN = "ADMIN"


# Roles allowed to mark default templates and to cancel other people's requests
ELEVATED_ROLES = frozenset({Role.PARTNER, Role.ADMIN})


class InstanceStatus(str, Enum):
    """Global approval instance status"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_INSTANCE_STATUSES


TERMINAL_INSTANCE_STATUSES = frozenset({
    InstanceStatus.APPROVED,
    InstanceStatus.REJECTED,
    InstanceStatus.EXPIRED,
    InstanceStatus.CANCELLED,
})


class StepStatus(str, Enum):
    """Runtime state per step execution"""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"  # Was active when the instance got cancelled

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STEP_STATUSES


TERMINAL_STEP_STATUSES = frozenset({
    StepStatus.APPROVED,
    StepStatus.REJECTED,
    StepStatus.EXPIRED,
    StepStatus.CANCELLED,
})


class DecisionOutcome(str, Enum):
    """Approver decision outcomes"""
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ConditionOperator(str, Enum):
    """Operators for condition evaluation"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    IN = "in"


class TimeoutPolicy(str, Enum):
    """What happens when an active step passes its deadline"""
    ESCALATE_REJECT = "ESCALATE_REJECT"  # Step and instance expire
    AUTO_APPROVE_ON_TIMEOUT = "AUTO_APPROVE_ON_TIMEOUT"  # Step approved by the system


class RejectionPolicy(str, Enum):
    """How rejections resolve a step"""
    ANY = "ANY"  # A single reject rejects the step
    UNANIMOUS = "UNANIMOUS"  # Every eligible approver must reject (or quorum becomes unreachable)


class ValueKind(str, Enum):
    """Tag of a context value"""
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    NULL = "NULL"
    LIST = "LIST"


class WorkflowEventType(str, Enum):
    """Types of events published to the notification collaborator"""
    INSTANCE_CREATED = "INSTANCE_CREATED"
    STEP_ACTIVATED = "STEP_ACTIVATED"
    DECISION_RECORDED = "DECISION_RECORDED"
    DECISION_REASSIGNED = "DECISION_REASSIGNED"
    STEP_APPROVED = "STEP_APPROVED"
    STEP_REJECTED = "STEP_REJECTED"
    STEP_EXPIRED = "STEP_EXPIRED"
    INSTANCE_APPROVED = "INSTANCE_APPROVED"
    INSTANCE_REJECTED = "INSTANCE_REJECTED"
    INSTANCE_EXPIRED = "INSTANCE_EXPIRED"
    INSTANCE_CANCELLED = "INSTANCE_CANCELLED"
    APPROVAL_REMINDER = "APPROVAL_REMINDER"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
