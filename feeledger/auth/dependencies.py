from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.models import Admin
from feeledger.auth.schemas import CurrentAdmin
from feeledger.auth.security import decode_access_token
from feeledger.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


async def get_current_admin(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentAdmin:
    """Resolve the authenticated admin from the bearer token."""
    admin_id = decode_access_token(token)
    admin = await db.get(Admin, admin_id) if admin_id else None
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, token failed",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentAdmin(id=admin.id, email=admin.email, name=admin.name)
