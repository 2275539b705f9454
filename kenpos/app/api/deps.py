from __future__ import annotations

from collections.abc import Generator
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from kenpos.app.core.config import settings
from kenpos.app.core.database import get_db
from kenpos.app.core.pos_config import PosConfig
from kenpos.app.core.security import ALGORITHM, is_token_revoked
from kenpos.app.models.user import User
from kenpos.app.services.connectivity import ConnectivityMonitor
from kenpos.app.services.ledger_client import LedgerClient

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login/access-token")

# Process-wide connectivity signal for this terminal
connectivity = ConnectivityMonitor()


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if is_token_revoked(token):
        raise credentials_exception

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user = db.query(User).filter(User.id == UUID(user_id)).first()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )
    return user


def get_connectivity() -> ConnectivityMonitor:
    return connectivity


def get_pos_config() -> PosConfig:
    return PosConfig.from_settings()


def get_ledger_client() -> Generator[LedgerClient, None, None]:
    client = LedgerClient.from_settings()
    try:
        yield client
    finally:
        client.close()
