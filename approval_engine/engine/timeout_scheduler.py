"""Timeout Scheduler - Step deadlines and reminder due-dates"""
from datetime import datetime
from typing import List, Optional

from ..domain.enums import StepStatus
from ..domain.models import Instance, StepDefinition, StepExecution
from ..utils.time import add_hours, is_overdue


class TimeoutScheduler:
    """Pure deadline queries; the engine applies the timeout policy"""

    def __init__(self, reminder_interval_hours: float = 24.0):
        self.reminder_interval_hours = reminder_interval_hours

    @staticmethod
    def deadline_for(step: StepDefinition, activated_at: datetime) -> Optional[datetime]:
        if step.timeout_hours is None:
            return None
        return add_hours(activated_at, step.timeout_hours)

    @staticmethod
    def check_deadlines(instance: Instance, now: datetime) -> List[StepExecution]:
        """ACTIVE executions whose deadline is strictly in the past"""
        return [
            e for e in instance.executions
            if e.status == StepStatus.ACTIVE and e.deadline is not None and is_overdue(e.deadline, now)
        ]

    def due_for_reminder(self, execution: StepExecution, now: datetime) -> bool:
        """
        An active step is due a reminder once it has waited a full interval
        since activation, and again each interval after the last reminder.
        """
        if execution.status != StepStatus.ACTIVE or execution.activated_at is None:
            return False
        if not execution.undecided_approvers():
            return False
        last = execution.reminder_sent_at or execution.activated_at
        return now >= add_hours(last, self.reminder_interval_hours)
