"""Tests for template lifecycle"""
import threading

import pytest

from approval_engine.domain.errors import (
    ConcurrentModificationError, ForbiddenError, TemplateNotFoundError, ValidationError
)
from tests.conftest import ORG, REQUESTER, step


class TestCreateTemplate:

    def test_steps_are_stored_in_order(self, engine):
        template = engine.create_template(ORG, {"name": "T", "steps": [step(3), step(1)]}, "mia")

        assert [s.step_number for s in template.steps] == [1, 3]
        assert template.revision == 1
        assert template.created_by == "mia"

    def test_duplicate_step_numbers(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.create_template(ORG, {"name": "T", "steps": [step(1), step(1)]}, "pat")
        assert exc_info.value.details["errors"]

    def test_at_least_one_step(self, engine):
        with pytest.raises(ValidationError):
            engine.create_template(ORG, {"name": "T", "steps": []}, "pat")

    def test_negative_step_number(self, engine):
        with pytest.raises(ValidationError):
            engine.create_template(ORG, {"name": "T", "steps": [step(-1)]}, "pat")

    def test_step_needs_approvers_unless_auto(self, engine):
        with pytest.raises(ValidationError):
            engine.create_template(ORG, {"name": "T", "steps": [{"step_number": 0, "name": "nobody"}]}, "pat")

    def test_unknown_role(self, engine):
        with pytest.raises(ValidationError):
            engine.create_template(ORG, {"name": "T", "steps": [step(0, approver_roles=["CEO"])]}, "pat")

    def test_default_requires_elevated_role(self, engine):
        with pytest.raises(ForbiddenError):
            engine.create_template(ORG, {"name": "T", "steps": [step(0)], "is_default": True}, "mia")


class TestDefaultTemplate:

    def test_second_default_unsets_the_first(self, engine, make_template):
        first = make_template([step(0)], category="expense", is_default=True)
        second = make_template([step(0)], category="expense", is_default=True)

        assert not engine.get_template(first.template_id).is_default
        assert engine.get_template(second.template_id).is_default
        assert engine.get_default_template(ORG, "expense").template_id == second.template_id

    def test_defaults_are_per_category(self, engine, make_template):
        expense = make_template([step(0)], category="expense", is_default=True)
        travel = make_template([step(0)], category="travel", is_default=True)

        assert engine.get_template(expense.template_id).is_default
        assert engine.get_template(travel.template_id).is_default

    def test_missing_default(self, engine):
        with pytest.raises(TemplateNotFoundError):
            engine.get_default_template(ORG, "nothing")

    def test_concurrent_defaults_leave_exactly_one(self, engine):
        barrier = threading.Barrier(5)
        errors = []

        def create(i):
            barrier.wait()
            try:
                engine.create_template(
                    ORG, {"name": f"T{i}", "category": "expense", "steps": [step(0)], "is_default": True}, "ada"
                )
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        defaults = engine.list_templates(ORG, {"category": "expense", "is_default": True})
        assert defaults.total == 1


class TestUpdateTemplate:

    def test_update_bumps_revision_without_touching_instances(self, engine, make_template):
        template = make_template([step(0, "Old")])
        instance = engine.create_instance(template.template_id, {}, REQUESTER)

        updated = engine.update_template(
            template.template_id,
            {"name": "Expense approval v2", "steps": [step(0, "New"), step(1, approver_ids=["pat"])]},
            "pat"
        )

        assert updated.revision == 2
        assert [s.name for s in updated.steps] == ["New", "Step 1"]
        kept = engine.get_instance(instance.instance_id)
        assert kept.template_revision == 1
        assert [s.name for s in kept.steps] == ["Old"]

    def test_only_creator_or_elevated_can_edit(self, engine, make_template):
        template = make_template([step(0)], creator="mia")

        with pytest.raises(ForbiddenError):
            engine.update_template(template.template_id, {"name": "x", "steps": [step(0)]}, "max")
        with pytest.raises(ForbiddenError):
            engine.set_template_active(template.template_id, False, "ash")

        assert engine.update_template(template.template_id, {"name": "x", "steps": [step(0)]}, "ada").revision == 2

    def test_creator_cannot_make_default_without_role(self, engine, make_template):
        template = make_template([step(0)], creator="mia")

        with pytest.raises(ForbiddenError):
            engine.update_template(template.template_id, {"name": "x", "steps": [step(0)], "is_default": True}, "mia")

    def test_update_to_default_clears_previous(self, engine, make_template):
        first = make_template([step(0)], category="expense", is_default=True)
        second = make_template([step(0)], category="expense")

        engine.update_template(
            second.template_id,
            {"name": "x", "category": "expense", "steps": [step(0)], "is_default": True},
            "pat"
        )

        assert not engine.get_template(first.template_id).is_default
        assert engine.get_template(second.template_id).is_default

    def test_conflicting_update_keeps_previous_default(self, engine, make_template, template_repo, monkeypatch):
        first = make_template([step(0)], category="expense", is_default=True)
        second = make_template([step(0)], category="expense")
        save = template_repo.save

        def stale_save(template, expected_version=None):
            if expected_version is not None:
                raise ConcurrentModificationError("Template was modified concurrently")
            return save(template, expected_version)

        monkeypatch.setattr(template_repo, "save", stale_save)

        with pytest.raises(ConcurrentModificationError):
            engine.update_template(
                second.template_id,
                {"name": "x", "category": "expense", "steps": [step(0)], "is_default": True},
                "pat"
            )

        assert engine.get_template(first.template_id).is_default
        assert not engine.get_template(second.template_id).is_default
        assert engine.get_default_template(ORG, "expense").template_id == first.template_id

    def test_moving_default_to_another_category(self, engine, make_template):
        expense = make_template([step(0)], category="expense", is_default=True)
        travel = make_template([step(0)], category="travel", is_default=True)

        moved = engine.update_template(
            expense.template_id,
            {"name": "x", "category": "travel", "steps": [step(0)], "is_default": True},
            "pat"
        )

        assert moved.is_default
        assert moved.category == "travel"
        assert not engine.get_template(travel.template_id).is_default

    def test_deactivate_and_reactivate(self, engine, make_template):
        template = make_template([step(0)])

        inactive = engine.set_template_active(template.template_id, False, "pat")
        again = engine.set_template_active(template.template_id, False, "pat")
        active = engine.set_template_active(template.template_id, True, "pat")

        assert not inactive.is_active
        assert again.version == inactive.version
        assert active.is_active
        assert engine.list_templates(ORG, {"is_active": True}).total == 1
