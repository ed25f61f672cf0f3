# backend/nakksha/api/dependencies/auth.py
"""
Authentication dependencies.

Authentication happens at the gateway in front of this service; it forwards
the authenticated consultant's id in ``X-Consultant-ID``.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...core.ulid_helper import is_valid_ulid
from ...database import get_db
from ...models.consultant import Consultant
from ...repositories.factory import RepositoryFactory


def get_current_consultant_id(
    x_consultant_id: Optional[str] = Header(None, alias="X-Consultant-ID"),
) -> str:
    if not x_consultant_id or not is_valid_ulid(x_consultant_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "message": "Missing or invalid consultant identity",
                "code": "UNAUTHORIZED",
                "details": {},
            },
        )
    return x_consultant_id


def get_current_consultant(
    consultant_id: str = Depends(get_current_consultant_id),
    db: Session = Depends(get_db),
) -> Consultant:
    consultant = RepositoryFactory.create_consultant_repository(db).get_by_id(consultant_id)
    if consultant is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "Consultant account not found",
                "code": "FORBIDDEN",
                "details": {},
            },
        )
    return consultant
