"""Permission Guard - Role gates for engine operations"""
from ..domain.enums import ELEVATED_ROLES
from ..domain.models import Instance
from ..services.directory_service import Directory
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for approval operations

    Rules:
    - Only elevated roles (partner, admin) may mark a template as default
    - Requester or an elevated role may cancel an instance
    - A principal manages their own delegations; elevated roles manage anyone's
    """

    def __init__(self, directory: Directory):
        self.directory = directory

    def is_elevated(self, actor_id: str, organization_id: str) -> bool:
        return self.directory.has_any_role(actor_id, organization_id, ELEVATED_ROLES)

    def can_set_default(self, actor_id: str, organization_id: str) -> bool:
        return self.is_elevated(actor_id, organization_id)

    def can_cancel(self, actor_id: str, instance: Instance) -> bool:
        """Check if actor can cancel the instance"""
        if actor_id == instance.requester_id:
            return True
        allowed = self.is_elevated(actor_id, instance.organization_id)
        if not allowed:
            logger.info(
                f"Cancel denied for {actor_id}",
                extra={"instance_id": instance.instance_id, "actor_id": actor_id}
            )
        return allowed

    def can_manage_delegation(self, actor_id: str, delegator_id: str, organization_id: str) -> bool:
        return actor_id == delegator_id or self.is_elevated(actor_id, organization_id)

