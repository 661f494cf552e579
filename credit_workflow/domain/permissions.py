"""Role -> capability policy, injected into the workflow"""

from typing import Dict, FrozenSet, Iterable, Mapping, Optional
from credit_workflow.domain.exceptions import PermissionDenied

VIEW_DASHBOARD = "view_dashboard"
VIEW_APPLICATIONS = "view_applications"
CREATE_APPLICATION = "create_application"
EDIT_APPLICATION = "edit_application"
DELETE_APPLICATION = "delete_application"
APPROVE_APPLICATION = "approve_application"
REJECT_APPLICATION = "reject_application"
VIEW_CLIENTS = "view_clients"
EDIT_CLIENTS = "edit_clients"
DELETE_CLIENTS = "delete_clients"
VIEW_ANALYTICS = "view_analytics"
EXPORT_DATA = "export_data"
MANAGE_USERS = "manage_users"
MANAGE_ROLES = "manage_roles"
SYSTEM_ADMIN = "system_admin"
MODIFY_CREDIT_SCORE = "modify_credit_score"
DELETE_CLIENT_DATA = "delete_client_data"
APPROVE_WITHOUT_VALIDATION = "approve_without_validation"
MODIFY_SCORING_ENGINE = "modify_scoring_engine"
OVERRIDE_SYSTEM_DECISIONS = "override_system_decisions"

_AGENT = frozenset({
    VIEW_DASHBOARD,
    VIEW_APPLICATIONS,
    CREATE_APPLICATION,
    EDIT_APPLICATION,
    VIEW_CLIENTS,
    VIEW_ANALYTICS,
})

_SENIOR_AGENT = _AGENT | {APPROVE_APPLICATION, REJECT_APPLICATION, EDIT_CLIENTS, EXPORT_DATA}

_MANAGER = _SENIOR_AGENT | {DELETE_APPLICATION, DELETE_CLIENTS, MANAGE_USERS}

# Critical actions (score edits, solo approvals, engine changes) are admin-only
_ADMIN = _MANAGER | {
    MANAGE_ROLES,
    SYSTEM_ADMIN,
    MODIFY_CREDIT_SCORE,
    DELETE_CLIENT_DATA,
    APPROVE_WITHOUT_VALIDATION,
    MODIFY_SCORING_ENGINE,
    OVERRIDE_SYSTEM_DECISIONS,
}

DEFAULT_ROLE_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "client": frozenset({VIEW_DASHBOARD, CREATE_APPLICATION, VIEW_APPLICATIONS}),
    "agent": _AGENT,
    "senior_agent": frozenset(_SENIOR_AGENT),
    "manager": frozenset(_MANAGER),
    "admin": frozenset(_ADMIN),
    "super_admin": frozenset(_ADMIN),
}


class RolePolicy:
    """Capability set per role; unknown roles have no capabilities"""

    def __init__(self, role_capabilities: Optional[Mapping[str, Iterable[str]]] = None):
        source = DEFAULT_ROLE_CAPABILITIES if role_capabilities is None else role_capabilities
        self._capabilities = {role: frozenset(caps) for role, caps in source.items()}

    def capabilities(self, role: str) -> FrozenSet[str]:
        return self._capabilities.get(role, frozenset())

    def has_permission(self, role: str, capability: str) -> bool:
        return capability in self.capabilities(role)

    def require(self, role: str, capability: str) -> None:
        if not self.has_permission(role, capability):
            raise PermissionDenied(role, capability)
