from fellowship.models.base import Base
from fellowship.models.event import Event
from fellowship.models.member import Member, MemberRole
from fellowship.models.rsvp import RSVP, RSVPStatus

__all__ = ["Base", "Member", "MemberRole", "Event", "RSVP", "RSVPStatus"]
