import logging

from ..domain.identity import OrganizationRef
from ..domain.ports.invitation import InvitationRecord

logger = logging.getLogger(__name__)


class LoggingInvitationNotifier:
    """Records invitation notifications; outbound delivery lives elsewhere."""

    async def send_invitation(
        self, invitation: InvitationRecord, organization: OrganizationRef
    ) -> None:
        logger.info(
            "Invitation notification queued invitation_id=%s organization=%s role=%s expires_at=%s",
            invitation.id,
            organization.slug or organization.id,
            invitation.role.value,
            invitation.expires_at.isoformat(),
        )
