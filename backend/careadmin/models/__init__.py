from .base import Base
from .user import User
from .organization import Organization
from .membership import Membership
from .agent_assignment import AgentAssignment
from .invitation import Invitation
from .audit_log import AuditLog
from .auth_session import AuthSession

__all__ = [
    "Base",
    "User",
    "Organization",
    "Membership",
    "AgentAssignment",
    "Invitation",
    "AuditLog",
    "AuthSession",
]
