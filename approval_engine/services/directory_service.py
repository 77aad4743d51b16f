"""Directory Service - Role membership lookups

The engine only needs two answers from the directory: which roles a
principal holds in an organization, and which principals hold some roles.
"""
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, Iterable, Optional, Set

import httpx

from ..config.settings import settings
from ..domain.enums import Role
from ..domain.errors import InternalError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Directory(ABC):
    """User/role directory collaborator"""

    @abstractmethod
    def roles_of(self, principal_id: str, organization_id: str) -> Set[Role]:
        """Roles held by a principal within an organization"""

    @abstractmethod
    def principals_with_roles(self, organization_id: str, roles: Iterable[Role]) -> Set[str]:
        """Principals of an organization holding any of the given roles"""

    def has_any_role(self, principal_id: str, organization_id: str, roles: Iterable[Role]) -> bool:
        return bool(self.roles_of(principal_id, organization_id) & set(roles))


class StaticDirectory(Directory):
    """In-memory directory: organization -> principal -> roles"""

    def __init__(self, memberships: Optional[Dict[str, Dict[str, Iterable[Role]]]] = None):
        self._lock = RLock()
        self._memberships: Dict[str, Dict[str, Set[Role]]] = {}
        for organization_id, principals in (memberships or {}).items():
            for principal_id, roles in principals.items():
                self.grant(organization_id, principal_id, *roles)

    def grant(self, organization_id: str, principal_id: str, *roles: Role) -> None:
        with self._lock:
            org = self._memberships.setdefault(organization_id, {})
            org.setdefault(principal_id, set()).update(Role(r) for r in roles)

    def revoke(self, organization_id: str, principal_id: str, *roles: Role) -> None:
        with self._lock:
            held = self._memberships.get(organization_id, {}).get(principal_id)
            if held is not None:
                held.difference_update(Role(r) for r in roles)

    def roles_of(self, principal_id: str, organization_id: str) -> Set[Role]:
        with self._lock:
            return set(self._memberships.get(organization_id, {}).get(principal_id, set()))

    def principals_with_roles(self, organization_id: str, roles: Iterable[Role]) -> Set[str]:
        wanted = set(roles)
        with self._lock:
            return {
                principal_id
                for principal_id, held in self._memberships.get(organization_id, {}).items()
                if held & wanted
            }


class HttpDirectoryService(Directory):
    """
    Directory backed by an HTTP API

    Endpoints:
        GET {base}/organizations/{org}/principals/{id}/roles -> {"roles": [...]}
        GET {base}/organizations/{org}/principals?role=A&role=B -> {"principal_ids": [...]}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = (base_url or settings.directory_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.directory_api_key
        self.timeout = timeout or settings.directory_timeout_seconds
        self._client = client

    def roles_of(self, principal_id: str, organization_id: str) -> Set[Role]:
        payload = self._get(
            f"/organizations/{organization_id}/principals/{principal_id}/roles",
            allow_missing=True
        )
        if payload is None:
            return set()
        return self._parse_roles(payload.get("roles", []), principal_id)

    def principals_with_roles(self, organization_id: str, roles: Iterable[Role]) -> Set[str]:
        role_values = sorted(Role(r).value for r in roles)
        if not role_values:
            return set()
        payload = self._get(
            f"/organizations/{organization_id}/principals",
            params=[("role", r) for r in role_values]
        )
        return {str(pid) for pid in (payload or {}).get("principal_ids", [])}

    def _parse_roles(self, raw_roles: Iterable[Any], principal_id: str) -> Set[Role]:
        roles: Set[Role] = set()
        for raw in raw_roles:
            try:
                roles.add(Role(raw))
            except ValueError:
                logger.warning(
                    f"Ignoring unknown role '{raw}' returned by directory",
                    extra={"actor_id": principal_id}
                )
        return roles

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get(self, path: str, params: Any = None, allow_missing: bool = False) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.get(url, params=params, headers=self._headers())
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, params=params, headers=self._headers())

            if allow_missing and response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Directory API error {e.response.status_code} for {path}")
            raise InternalError(
                "Directory lookup failed",
                details={"path": path, "status_code": e.response.status_code}
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Directory API unreachable for {path}: {e}")
            raise InternalError("Directory lookup failed", details={"path": path})
