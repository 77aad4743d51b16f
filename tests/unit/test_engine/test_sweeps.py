"""Tests for timeout and reminder sweeps"""
from approval_engine.domain.enums import DecisionOutcome, InstanceStatus, StepStatus, WorkflowEventType
from approval_engine.domain.models import SYSTEM_ACTOR
from tests.conftest import REQUESTER, step


class TestSweepTimeouts:

    def test_expires_after_deadline_but_not_before(self, engine, make_template, clock, publisher):
        template = make_template([step(0, timeout_hours=1)])
        instance = engine.create_instance(template.template_id, {}, REQUESTER)

        clock.advance(minutes=59)
        assert engine.sweep_timeouts() == []
        assert engine.get_instance(instance.instance_id).status == InstanceStatus.IN_PROGRESS

        clock.advance(minutes=2)
        assert engine.sweep_timeouts() == [instance.instance_id]

        expired = engine.get_instance(instance.instance_id)
        assert expired.status == InstanceStatus.EXPIRED
        assert expired.executions[0].status == StepStatus.EXPIRED
        assert expired.resolved_at == clock.now
        assert len(publisher.of_type(WorkflowEventType.STEP_EXPIRED)) == 1
        assert len(publisher.of_type(WorkflowEventType.INSTANCE_EXPIRED)) == 1

    def test_auto_approve_on_timeout_advances(self, engine, make_template, clock):
        template = make_template([
            step(0, timeout_hours=1, on_timeout="AUTO_APPROVE_ON_TIMEOUT"),
            step(1, approver_ids=["pat"], timeout_hours=4),
        ])
        instance = engine.create_instance(template.template_id, {}, REQUESTER)

        clock.advance(minutes=61)
        assert engine.sweep_timeouts() == [instance.instance_id]

        advanced = engine.get_instance(instance.instance_id)
        first, second = advanced.executions
        assert first.status == StepStatus.APPROVED
        assert first.decisions[-1].approver_id == SYSTEM_ACTOR
        assert first.decisions[-1].is_system
        assert second.status == StepStatus.ACTIVE
        assert second.activated_at == clock.now
        assert advanced.next_deadline == second.deadline

    def test_sweep_twice_changes_nothing(self, engine, make_template, clock, publisher):
        template = make_template([step(0, timeout_hours=1)])
        engine.create_instance(template.template_id, {}, REQUESTER)

        clock.advance(hours=2)
        engine.sweep_timeouts()
        events = len(publisher.events)

        assert engine.sweep_timeouts() == []
        assert len(publisher.events) == events

    def test_steps_without_timeout_never_expire(self, engine, make_template, clock):
        template = make_template([step(0)])
        instance = engine.create_instance(template.template_id, {}, REQUESTER)

        clock.advance(hours=1000)

        assert engine.sweep_timeouts() == []
        assert engine.get_instance(instance.instance_id).status == InstanceStatus.IN_PROGRESS

    def test_failing_instance_does_not_stop_sweep(self, engine, make_template, clock, instance_repo, monkeypatch):
        template = make_template([step(0, timeout_hours=1)])
        broken = engine.create_instance(template.template_id, {}, REQUESTER)
        healthy = engine.create_instance(template.template_id, {}, REQUESTER)

        original_find = instance_repo.find

        def find(instance_id):
            if instance_id == broken.instance_id:
                raise RuntimeError("corrupt document")
            return original_find(instance_id)

        monkeypatch.setattr(instance_repo, "find", find)
        clock.advance(hours=2)

        assert engine.sweep_timeouts() == [healthy.instance_id]


class TestSendReminders:

    def test_reminds_undecided_approvers_once_per_interval(self, engine, make_template, clock, publisher):
        template = make_template([step(0, is_parallel=True, required_approvals=2)])
        instance = engine.create_instance(template.template_id, {}, REQUESTER)
        engine.submit_decision(instance.instance_id, "mia", DecisionOutcome.APPROVE)

        clock.advance(hours=23)
        assert engine.send_reminders() == []

        clock.advance(hours=1)
        assert engine.send_reminders() == [instance.instance_id]
        reminder = publisher.of_type(WorkflowEventType.APPROVAL_REMINDER)[0]
        assert sorted(reminder.recipient_ids) == ["max", "mel"]
        assert engine.get_instance(instance.instance_id).executions[0].reminder_sent_at == clock.now

        assert engine.send_reminders() == []

        clock.advance(hours=24)
        assert engine.send_reminders() == [instance.instance_id]
        assert len(publisher.of_type(WorkflowEventType.APPROVAL_REMINDER)) == 2

    def test_resolved_instances_get_no_reminder(self, engine, make_template, clock):
        template = make_template([step(0)])
        instance = engine.create_instance(template.template_id, {}, REQUESTER)
        engine.submit_decision(instance.instance_id, "max", DecisionOutcome.APPROVE)

        clock.advance(hours=48)

        assert engine.send_reminders() == []
