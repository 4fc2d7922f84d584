# answer_eval/core/security.py
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from answer_eval.core.config import settings

# tokens come from the external identity provider; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=True)

LEARNER = "learner"
EVALUATOR = "evaluator"
ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    user_id: str
    tenant_id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in (EVALUATOR, ADMIN)


def decode_identity_token(token: str) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id") or payload.get("client_id")
    if not user_id or not tenant_id:
        raise credentials_exception

    return Identity(
        user_id=str(user_id),
        tenant_id=str(tenant_id),
        role=payload.get("role", LEARNER),
    )


def get_current_identity(token: str = Depends(oauth2_scheme)) -> Identity:
    return decode_identity_token(token)


def get_current_learner(identity: Identity = Depends(get_current_identity)) -> Identity:
    if identity.role != LEARNER:
        raise HTTPException(status_code=403, detail="Learner role required")
    return identity


def get_current_evaluator(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_staff:
        raise HTTPException(status_code=403, detail="Evaluator role required")
    return identity


def get_current_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if identity.role != ADMIN:
        raise HTTPException(status_code=403, detail="Admin role required")
    return identity
