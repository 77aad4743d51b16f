"""Tests for TimeoutScheduler"""
from datetime import datetime, timedelta, timezone

from approval_engine.domain.enums import DecisionOutcome, StepStatus
from approval_engine.domain.models import Decision, Instance, StepDefinition, StepExecution
from approval_engine.engine.timeout_scheduler import TimeoutScheduler

T = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def instance_with(execution: StepExecution) -> Instance:
    return Instance(
        instance_id="APR-1",
        organization_id="org-1",
        template_id="TPL-1",
        template_name="T",
        requester_id="req",
        steps=[StepDefinition(step_number=execution.step_number, name="s", approver_ids=["a"])],
        executions=[execution],
        created_at=T,
        updated_at=T
    )


def active(deadline=None, activated_at=T, **fields) -> StepExecution:
    return StepExecution(
        step_number=0, name="s", status=StepStatus.ACTIVE,
        eligible_approvers=["a", "b"], activated_at=activated_at, deadline=deadline, **fields
    )


def test_deadline_for():
    timed = StepDefinition(step_number=0, name="s", approver_ids=["a"], timeout_hours=1.5)
    untimed = StepDefinition(step_number=0, name="s", approver_ids=["a"])

    assert TimeoutScheduler.deadline_for(timed, T) == T + timedelta(minutes=90)
    assert TimeoutScheduler.deadline_for(untimed, T) is None


def test_check_deadlines_is_strict():
    deadline = T + timedelta(hours=1)
    instance = instance_with(active(deadline=deadline))

    assert TimeoutScheduler.check_deadlines(instance, deadline) == []
    assert len(TimeoutScheduler.check_deadlines(instance, deadline + timedelta(seconds=1))) == 1


def test_check_deadlines_ignores_resolved_steps():
    execution = active(deadline=T)
    execution.status = StepStatus.APPROVED

    assert TimeoutScheduler.check_deadlines(instance_with(execution), T + timedelta(days=1)) == []


def test_due_for_reminder():
    scheduler = TimeoutScheduler(reminder_interval_hours=24)
    execution = active()

    assert not scheduler.due_for_reminder(execution, T + timedelta(hours=23))
    assert scheduler.due_for_reminder(execution, T + timedelta(hours=24))

    execution.reminder_sent_at = T + timedelta(hours=24)
    assert not scheduler.due_for_reminder(execution, T + timedelta(hours=47))
    assert scheduler.due_for_reminder(execution, T + timedelta(hours=48))


def test_no_reminder_when_everyone_decided():
    scheduler = TimeoutScheduler(reminder_interval_hours=1)
    decisions = [
        Decision(approver_id=a, outcome=DecisionOutcome.APPROVE, decided_at=T) for a in ("a", "b")
    ]
    execution = active(decisions=decisions)

    assert not scheduler.due_for_reminder(execution, T + timedelta(days=3))
