import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from app.core.config import settings

http_bearer = HTTPBearer(auto_error=False)

class Principal(BaseModel):
    """Caller identity: the sending user and the tenant they act for."""
    user_id: uuid.UUID
    org_id: uuid.UUID
    roles: list[str] = []
    scopes: list[str] = []

    def can(self, scope: str) -> bool:
        return "*" in self.scopes or scope in self.scopes

def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

def resolve_caller(token: str) -> Principal:
    data = _decode_token(token)
    sub = data.get("sub") or data.get("user_id")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
    # tenant claim: "tenant_id" preferred, "org_id" accepted
    tenant = data.get("tenant_id") or data.get("org_id") or settings.DEFAULT_ORG_ID
    try:
        return Principal(
            user_id=uuid.UUID(str(sub)),
            org_id=uuid.UUID(str(tenant)),
            roles=data.get("roles", []),
            scopes=data.get("scopes", []),
        )
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Malformed identity claims")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local/dev, allow missing token and use default org
    if creds is None and settings.ENV == "local":
        return Principal(user_id=uuid.UUID(int=0), org_id=uuid.UUID(settings.DEFAULT_ORG_ID), roles=["admin"], scopes=["*"])
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")
    return resolve_caller(creds.credentials)

def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if not all(principal.can(s) for s in needed):
            raise HTTPException(status_code=403, detail="Insufficient scopes")
        return principal
    return dep
