from fastapi import APIRouter

from .admin import impersonation as admin_impersonation
from .admin import invitations as admin_invitations
from .admin import me as admin_me
from .admin import organizations as admin_organizations
from .admin import users as admin_users

router = APIRouter(prefix="/admin")

_admin_routers = [
    admin_me.router,
    admin_organizations.router,
    admin_users.router,
    admin_impersonation.router,
    admin_invitations.router,
]

for _router in _admin_routers:
    router.include_router(_router)
