import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.ports.invitation import InvitationRecord, InvitationStatus
from ..models.invitation import Invitation


class InvitationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, invitation: InvitationRecord) -> InvitationRecord:
        row = Invitation(
            id=invitation.id,
            organization_id=invitation.organization_id,
            email=invitation.email,
            role=invitation.role.value,
            status=invitation.status.value,
            invited_by=invitation.invited_by,
            created_at=invitation.created_at,
            expires_at=invitation.expires_at,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return row.to_record()

    async def get(self, invitation_id: uuid.UUID) -> InvitationRecord | None:
        row = await self.session.get(Invitation, invitation_id, populate_existing=True)
        return row.to_record() if row else None

    async def transition(
        self,
        invitation_id: uuid.UUID,
        *,
        expected: InvitationStatus,
        new_status: InvitationStatus,
    ) -> InvitationRecord | None:
        # Single conditional UPDATE; concurrent transitions cannot both win
        result = await self.session.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id, Invitation.status == expected.value)
            .values(status=new_status.value)
            .returning(Invitation)
            .execution_options(synchronize_session=False)
        )
        row = result.scalar_one_or_none()
        await self.session.commit()
        return row.to_record() if row else None

    async def list_for_organization(
        self, organization_id: uuid.UUID
    ) -> list[InvitationRecord]:
        result = await self.session.execute(
            select(Invitation)
            .where(Invitation.organization_id == organization_id)
            .order_by(Invitation.created_at.desc())
        )
        return [row.to_record() for row in result.scalars().all()]

    async def list_pending_expired(self, now: datetime) -> list[InvitationRecord]:
        result = await self.session.execute(
            select(Invitation).where(
                Invitation.status == InvitationStatus.PENDING.value,
                Invitation.expires_at <= now,
            )
        )
        return [row.to_record() for row in result.scalars().all()]
