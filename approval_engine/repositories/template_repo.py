"""Template Repository - MongoDB data access for approval templates"""
from datetime import datetime
from typing import Any, Dict, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError
from pydantic import ValidationError as PydanticValidationError

from .base import TemplateRepository, TEMPLATE_FILTERS, normalize_filters
from .mongo_client import get_collection, save_versioned
from ..domain.errors import ConcurrentModificationError, TemplateNotFoundError
from ..domain.models import Page, Template
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Attempts at swapping the default before giving up to a concurrent writer
DEFAULT_SWAP_ATTEMPTS = 5


class MongoTemplateRepository(TemplateRepository):
    """Repository for template operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._templates: Collection = collection if collection is not None else get_collection("approval_templates")

    def save(self, template: Template, expected_version: Optional[int] = None) -> Template:
        stored = save_versioned(
            self._templates, "template_id", template.model_dump(), expected_version, "Template"
        )
        logger.info(
            f"Saved template: {template.template_id}",
            extra={"template_id": template.template_id, "organization_id": template.organization_id}
        )
        return Template.model_validate(stored)

    def find(self, template_id: str) -> Optional[Template]:
        doc = self._templates.find_one({"template_id": template_id})
        if doc:
            doc.pop("_id", None)
            return Template.model_validate(doc)
        return None

    def query(
        self,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Page[Template]:
        """List templates with optional filters. Skips corrupted records."""
        query: Dict[str, Any] = {"organization_id": organization_id}
        for key, value in normalize_filters(filters, TEMPLATE_FILTERS).items():
            query[key] = {"$in": value} if isinstance(value, list) else value

        total = self._templates.count_documents(query)
        cursor = self._templates.find(query).sort("updated_at", DESCENDING).skip(skip).limit(limit)

        items = []
        for doc in cursor:
            doc.pop("_id", None)
            try:
                items.append(Template.model_validate(doc))
            except PydanticValidationError as e:
                logger.warning(
                    f"Skipping corrupted template {doc.get('template_id', 'unknown')} in list. Errors: {len(e.errors())}",
                    extra={"template_id": doc.get("template_id")}
                )
        return Page(items=items, total=total, skip=skip, limit=limit)

    def set_default(self, template_id: str, at: datetime) -> Template:
        """
        Clear the category's other defaults, then flag this one

        The partial unique index on (organization_id, category) for defaults
        rejects the flag while a concurrent writer still holds it; the swap is
        retried from the clearing step.
        """
        target = self.find(template_id)
        if target is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")

        for attempt in range(1, DEFAULT_SWAP_ATTEMPTS + 1):
            self._templates.update_many(
                {
                    "organization_id": target.organization_id,
                    "category": target.category,
                    "is_default": True,
                    "template_id": {"$ne": template_id}
                },
                {"$set": {"is_default": False, "updated_at": at}, "$inc": {"version": 1}}
            )
            try:
                doc = self._templates.find_one_and_update(
                    {"template_id": template_id},
                    {"$set": {"is_default": True, "updated_at": at}, "$inc": {"version": 1}},
                    return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError:
                logger.warning(
                    f"Default swap for template {template_id} collided (attempt {attempt})",
                    extra={"template_id": template_id, "organization_id": target.organization_id}
                )
                continue

            if doc is None:
                raise TemplateNotFoundError(f"Template {template_id} not found")
            doc.pop("_id", None)
            logger.info(
                f"Template {template_id} is now default for category {target.category}",
                extra={"template_id": template_id, "organization_id": target.organization_id}
            )
            return Template.model_validate(doc)

        raise ConcurrentModificationError(
            f"Template {template_id} could not become default",
            details={"attempts": DEFAULT_SWAP_ATTEMPTS}
        )
