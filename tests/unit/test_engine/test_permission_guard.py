"""Tests for PermissionGuard"""
import pytest

from approval_engine.engine.permission_guard import PermissionGuard
from tests.conftest import ORG, REQUESTER, step


@pytest.fixture
def guard(directory):
    return PermissionGuard(directory)


def test_elevated_roles(guard):
    assert guard.is_elevated("pat", ORG)
    assert guard.is_elevated("ada", ORG)
    assert not guard.is_elevated("mia", ORG)
    assert not guard.is_elevated("pat", "other-org")


def test_delegation_management(guard):
    assert guard.can_manage_delegation("mia", "mia", ORG)
    assert guard.can_manage_delegation("ada", "mia", ORG)
    assert not guard.can_manage_delegation("max", "mia", ORG)


def test_cancel_rights(guard, engine, make_template):
    template = make_template([step(0)])
    instance = engine.create_instance(template.template_id, {}, REQUESTER)

    assert guard.can_cancel(REQUESTER, instance)
    assert guard.can_cancel("pat", instance)
    assert guard.can_cancel("ada", instance)
    assert not guard.can_cancel("mia", instance)
    assert not guard.can_cancel("ash", instance)


def test_default_template_rights(guard):
    assert guard.can_set_default("pat", ORG)
    assert not guard.can_set_default("mel", ORG)
