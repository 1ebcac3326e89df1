from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from medslot.auth import jwt_handler
from medslot.core.errors import NotAuthenticated, to_http_exception
from medslot.database import get_db
from medslot.models.patient import Patient
from medslot.models.staff import Staff

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: int
    email: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role == jwt_handler.ROLE_STAFF

    @property
    def is_patient(self) -> bool:
        return self.role == jwt_handler.ROLE_PATIENT


def _unauthenticated(message: str) -> HTTPException:
    return to_http_exception(NotAuthenticated(message))


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if credentials is None:
        raise _unauthenticated("User not authenticated.")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise _unauthenticated("Invalid token") from exc

    email = payload.get("sub")
    role = payload.get("role")
    if not email:
        raise _unauthenticated("Invalid token subject")

    if role == jwt_handler.ROLE_STAFF:
        account = db.query(Staff).filter(Staff.email == email, Staff.is_active.is_(True)).first()
    elif role == jwt_handler.ROLE_PATIENT:
        account = db.query(Patient).filter(Patient.email == email).first()
    else:
        raise _unauthenticated("Invalid token role")

    if account is None:
        raise _unauthenticated("User not found")
    return CurrentUser(id=account.id, email=email, role=role)


def get_current_user_id(user: CurrentUser = Depends(get_current_user)) -> int:
    return user.id


def require_staff(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only staff can manage time slots.",
        )
    return user


def require_patient(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_patient:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only patients can book appointments.",
        )
    return user
