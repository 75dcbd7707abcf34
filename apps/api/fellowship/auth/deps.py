from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fellowship.core.config import settings
from fellowship.db import get_db
from fellowship.models import Member, MemberRole

DBSession = Annotated[Session, Depends(get_db)]


def _unauthorized(detail: str = "unauthorized") -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_member(request: Request, db: DBSession) -> Member:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise _unauthorized("missing bearer token")

    token = auth.removeprefix("Bearer ").strip()

    # Identity plumbing only; credentials are checked upstream
    if settings.auth_mode == "dev":
        prefix = settings.dev_auth_prefix
        if not token.startswith(prefix):
            raise _unauthorized(f"invalid dev token (expected prefix {prefix})")

        email = token.removeprefix(prefix).strip().lower()
        if "@" not in email:
            raise _unauthorized("invalid email in token")

        member = db.scalar(select(Member).where(Member.email == email))
        if not member:
            member = Member(email=email, role=MemberRole.MEMBER)
            db.add(member)
            try:
                db.commit()
            except IntegrityError:
                # Two first requests for the same email raced
                db.rollback()
                member = db.scalar(select(Member).where(Member.email == email))
                if not member:
                    raise _unauthorized("could not resolve member") from None

        return member

    raise _unauthorized("auth not configured")


CurrentMember = Annotated[Member, Depends(get_current_member)]


def require_role(*roles: MemberRole):
    allowed = set(roles)

    def _dependency(member: CurrentMember) -> Member:
        if member.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": "insufficient role"},
            )
        return member

    return _dependency


OrganizerMember = Annotated[Member, Depends(require_role(MemberRole.STAFF, MemberRole.ADMIN))]
