"""
Pytest Configuration and Fixtures

Shared in-memory collaborators and a controllable clock for all tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from approval_engine.domain.enums import Role
from approval_engine.engine.engine import WorkflowEngine
from approval_engine.repositories.memory_repo import (
    InMemoryDelegateRepository, InMemoryInstanceRepository, InMemoryTemplateRepository
)
from approval_engine.services.directory_service import StaticDirectory
from approval_engine.services.notification_service import RecordingPublisher

ORG = "org-1"
REQUESTER = "req"
MANAGERS = ["max", "mel", "mia"]


class FrozenClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float = 0, minutes: float = 0) -> datetime:
        self.now = self.now + timedelta(hours=hours, minutes=minutes)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def directory() -> StaticDirectory:
    """Org with one partner, one admin, three managers and one associate (no interns)"""
    return StaticDirectory({
        ORG: {
            "pat": [Role.PARTNER],
            "ada": [Role.ADMIN],
            "max": [Role.MANAGER],
            "mel": [Role.MANAGER],
            "mia": [Role.MANAGER],
            "ash": [Role.ASSOCIATE],
        }
    })


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def template_repo() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository()


@pytest.fixture
def instance_repo() -> InMemoryInstanceRepository:
    return InMemoryInstanceRepository()


@pytest.fixture
def delegate_repo() -> InMemoryDelegateRepository:
    return InMemoryDelegateRepository()


@pytest.fixture
def engine(template_repo, instance_repo, directory, publisher, delegate_repo, clock) -> WorkflowEngine:
    return WorkflowEngine(
        template_repo=template_repo,
        instance_repo=instance_repo,
        directory=directory,
        publisher=publisher,
        delegate_repo=delegate_repo,
        clock=clock,
        lock_timeout_seconds=5.0,
        max_conflict_retries=3,
        reminder_interval_hours=24.0
    )


def step(step_number: int, name: str = None, **fields: Any) -> Dict[str, Any]:
    """Step definition dict; defaults to the manager role"""
    data = {"step_number": step_number, "name": name or f"Step {step_number}"}
    if not fields.get("auto_approve") and "approver_ids" not in fields and "approver_roles" not in fields:
        data["approver_roles"] = ["MANAGER"]
    data.update(fields)
    return data


@pytest.fixture
def make_template(engine):
    """Create an active template owned by the partner"""

    def _make(steps: List[Dict[str, Any]], creator: str = "pat", **fields: Any):
        definition = {"name": fields.pop("name", "Expense approval"), "steps": steps, **fields}
        return engine.create_template(ORG, definition, creator)

    return _make
