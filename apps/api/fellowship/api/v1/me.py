from fastapi import APIRouter
from pydantic import BaseModel

from fellowship.api.v1.schemas.events import RSVPWithEventOut
from fellowship.auth.deps import CurrentMember, DBSession
from fellowship.services import rsvp_service

router = APIRouter(prefix="/me", tags=["me"])


class MeOut(BaseModel):
    member_id: str
    email: str
    first_name: str | None
    last_name: str | None
    role: str


@router.get("", response_model=MeOut)
def me(member: CurrentMember):
    return MeOut(
        member_id=str(member.id),
        email=member.email,
        first_name=member.first_name,
        last_name=member.last_name,
        role=member.role.value,
    )


@router.get("/rsvps", response_model=list[RSVPWithEventOut])
def my_rsvps(member: CurrentMember, db: DBSession):
    rsvps = rsvp_service.list_for_member(db, member)
    return [RSVPWithEventOut.model_validate(r) for r in rsvps]
