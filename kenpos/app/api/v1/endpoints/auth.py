from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from kenpos.app.api.deps import get_current_user, oauth2_scheme
from kenpos.app.core.database import get_db
from kenpos.app.core.security import (
    create_access_token,
    revoke_token,
    verify_password,
)
from kenpos.app.models.user import User
from kenpos.app.services.audit import log_action
from kenpos.app.services.shifts import has_active_shift

router = APIRouter()


@router.post("/login/access-token")
def login_access_token(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> dict[str, str]:
    ip = request.client.host if request.client else "unknown"
    user = db.query(User).filter(User.username == form_data.username).first()

    if not user or not verify_password(form_data.password, user.hashed_password):
        log_action(
            db,
            user_id=user.id if user else None,
            action="LOGIN_FAILED",
            resource_type="auth",
            resource_id=form_data.username,
            ip_address=ip,
            changes={"reason": "invalid_credentials"},
        )
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )

    log_action(
        db,
        user_id=user.id,
        action="LOGIN_SUCCESS",
        resource_type="auth",
        resource_id=str(user.id),
        ip_address=ip,
        changes={"username": user.username, "role": user.role.value},
    )
    db.commit()

    return {
        "access_token": create_access_token(subject=str(user.id)),
        "token_type": "bearer",
    }


@router.post("/logout")
def logout(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user),
) -> dict[str, str]:
    """Invalidate the current access token.

    Refused while the operator still has an open shift; the drawer must be
    counted and the shift closed first.
    """
    if has_active_shift(db, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Close the active shift before logging out",
        )
    revoke_token(token)
    return {"detail": "Logged out successfully"}
