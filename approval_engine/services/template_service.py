"""Template Service - Approval template lifecycle"""
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ForbiddenError, TemplateNotFoundError, ValidationError
from ..domain.models import Page, Template, TemplateDefinition
from ..engine.locking import KeyedLockManager
from ..engine.permission_guard import PermissionGuard
from ..repositories.base import TemplateRepository, validate_page
from ..utils.idgen import generate_template_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

DefinitionInput = Union[TemplateDefinition, Mapping[str, Any]]


def parse_definition(definition: DefinitionInput) -> TemplateDefinition:
    """Validate caller input into a TemplateDefinition"""
    if isinstance(definition, TemplateDefinition):
        return definition
    try:
        return TemplateDefinition.model_validate(definition)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Invalid template definition")


class TemplateService:
    """
    Service for template operations

    At most one template per organization + category is the default.
    The repository swaps the default in one store-level operation; a lock
    keyed by organization and category serializes swaps within the process.
    """

    def __init__(
        self,
        repo: TemplateRepository,
        permission_guard: PermissionGuard,
        locks: Optional[KeyedLockManager] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.repo = repo
        self.permission_guard = permission_guard
        self.locks = locks or KeyedLockManager()
        self.clock = clock

    def create_template(
        self,
        organization_id: str,
        definition: DefinitionInput,
        creator_id: str
    ) -> Template:
        """Create a new template; is_default requires an elevated role"""
        parsed = parse_definition(definition)
        if parsed.is_default and not self.permission_guard.can_set_default(creator_id, organization_id):
            raise ForbiddenError(
                "Only partners and admins can mark a template as default",
                details={"actor_id": creator_id}
            )

        now = self.clock()
        template = Template(
            template_id=generate_template_id(),
            organization_id=organization_id,
            created_by=creator_id,
            created_at=now,
            updated_at=now,
            **parsed.model_dump()
        )

        created = self.repo.save(template.model_copy(update={"is_default": False}))
        if not template.is_default:
            return created
        return self._make_default(created)

    def update_template(
        self,
        template_id: str,
        definition: DefinitionInput,
        actor_id: str
    ) -> Template:
        """
        Replace the template content and bump its revision

        Running instances keep the step snapshot they were created with.
        """
        template = self.repo.get_or_raise(template_id)
        parsed = parse_definition(definition)
        self._check_can_edit(template, actor_id)
        if parsed.is_default != template.is_default and not self.permission_guard.can_set_default(
            actor_id, template.organization_id
        ):
            raise ForbiddenError(
                "Only partners and admins can change the default template",
                details={"actor_id": actor_id, "template_id": template_id}
            )

        # Content first; the default flag only moves once that write has won
        keeps_default = template.is_default and parsed.category == template.category
        updated = template.model_copy(update={
            **parsed.model_dump(),
            "is_default": parsed.is_default and keeps_default,
            "revision": template.revision + 1,
            "updated_at": self.clock()
        })
        saved = self.repo.save(updated, expected_version=template.version)

        if parsed.is_default and not saved.is_default:
            return self._make_default(saved)
        return saved

    def set_template_active(self, template_id: str, is_active: bool, actor_id: str) -> Template:
        """Activate or deactivate a template; inactive templates cannot be instantiated"""
        template = self.repo.get_or_raise(template_id)
        self._check_can_edit(template, actor_id)
        if template.is_active == is_active:
            return template

        logger.info(
            f"Template {template_id} {'activated' if is_active else 'deactivated'} by {actor_id}",
            extra={"template_id": template_id, "actor_id": actor_id}
        )
        return self.repo.save(
            template.model_copy(update={"is_active": is_active, "updated_at": self.clock()}),
            expected_version=template.version
        )

    def get_template(self, template_id: str) -> Template:
        """Get template by ID"""
        return self.repo.get_or_raise(template_id)

    def list_templates(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Template]:
        """List templates"""
        validate_page(skip, limit)
        return self.repo.query(organization_id, filters, skip=skip, limit=limit)

    def get_default_template(self, organization_id: str, category: Optional[str]) -> Template:
        """Get the default template of a category"""
        for template in self._defaults(organization_id, category):
            return template
        raise TemplateNotFoundError(
            f"No default template for category {category}",
            details={"organization_id": organization_id, "category": category}
        )

    def _check_can_edit(self, template: Template, actor_id: str) -> None:
        if actor_id == template.created_by:
            return
        if self.permission_guard.is_elevated(actor_id, template.organization_id):
            return
        raise ForbiddenError(
            "Only the creator or an elevated role can edit this template",
            details={"actor_id": actor_id, "template_id": template.template_id}
        )

    def _defaults(self, organization_id: str, category: Optional[str]):
        page = self.repo.query(organization_id, {"is_default": True}, skip=0, limit=1000)
        return [t for t in page.items if t.category == category]

    def _make_default(self, template: Template) -> Template:
        with self.locks.hold(self._default_key(template.organization_id, template.category)):
            stored = self.repo.set_default(template.template_id, self.clock())
        logger.info(
            f"Template {stored.template_id} is now default for category {stored.category}",
            extra={"template_id": stored.template_id, "organization_id": stored.organization_id}
        )
        return stored

    @staticmethod
    def _default_key(organization_id: str, category: Optional[str]) -> str:
        return f"default-template:{organization_id}:{category or ''}"
