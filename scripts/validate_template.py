"""Script to validate an approval template definition

Usage:
    python scripts/validate_template.py template.json
    python scripts/validate_template.py template.json --context request.json

The template file holds a template definition (name, category, steps, ...).
With --context, each step's conditions are evaluated against the request.
"""
import argparse
import json
import sys
from typing import List, Optional

sys.path.insert(0, ".")

from approval_engine.domain.context import build_context
from approval_engine.domain.errors import ValidationError
from approval_engine.engine.condition_evaluator import ConditionEvaluator
from approval_engine.services.template_service import parse_definition


def validate_template(path: str, context_path: Optional[str] = None) -> bool:
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    try:
        definition = parse_definition(raw)
    except ValidationError as e:
        print(f"❌ Invalid template: {e.message}")
        for error in e.details.get("errors", []):
            location = ".".join(str(p) for p in error.get("loc", []))
            print(f"   • {location}: {error.get('msg')}")
        return False

    print(f"✅ Template: {definition.name}")
    print(f"   Category: {definition.category or '-'}")
    print(f"   Default: {definition.is_default}  Active: {definition.is_active}")

    print("\n" + "=" * 60)
    print(f"STEPS ({len(definition.steps)} total)")
    print("=" * 60)

    for step in definition.steps:
        mode = "parallel" if step.is_parallel else "sequential"
        print(f"\n{step.step_number}. {step.name} [{mode}]")
        if step.auto_approve:
            print("   Auto-approve")
        if step.approver_roles:
            print(f"   Roles: {', '.join(r.value for r in step.approver_roles)}")
        if step.approver_ids:
            print(f"   Approvers: {', '.join(step.approver_ids)}")
        if step.required_approvals:
            print(f"   Required approvals: {step.required_approvals}")
        if step.timeout_hours:
            print(f"   Timeout: {step.timeout_hours}h -> {step.on_timeout.value}")
        for condition in step.conditions:
            print(f"   If {condition.field} {condition.operator.value} {condition.value!r}")

    if context_path:
        with open(context_path, encoding="utf-8") as f:
            context = build_context(json.load(f))

        evaluator = ConditionEvaluator()
        print("\n" + "=" * 60)
        print("CONDITION CHECK")
        print("=" * 60)
        for step in definition.steps:
            applies = True
            for condition in step.conditions:
                holds, seen = evaluator.explain(condition, context)
                applies = applies and holds
                mark = "✓" if holds else "✗"
                print(f"   {mark} step {step.step_number}: {condition.field}={seen!r}")
            print(f"{'✅' if applies else '⏭️ '} Step {step.step_number} ({step.name}) {'applies' if applies else 'skipped'}")

    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Validate an approval template JSON file")
    parser.add_argument("template", help="Path to the template definition JSON")
    parser.add_argument("--context", help="Optional request context JSON to evaluate conditions against")
    args = parser.parse_args(argv)

    return 0 if validate_template(args.template, args.context) else 1


if __name__ == "__main__":
    sys.exit(main())
