from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.core.exceptions import ForbiddenError
from app.core.firebase import identity_from_claims, verify_firebase_token
from app.models.user import AccountStatus, User, UserRole
from app.api.v1.deps import get_user_service
from app.services.user_service import UserService
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Dependency to get current authenticated user from Firebase token.
    Protects routes that require authentication.
    """
    logger.info("get_current_user: Entry")

    try:
        token = credentials.credentials
        identity = identity_from_claims(verify_firebase_token(token))
        user_id = identity['uid']

        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials"
            )

        # Rate limiting keys on this
        request.state.user_id = user_id

        logger.info(f"get_current_user: Success - {user_id}")
        return identity
    except Exception as e:
        logger.error(f"get_current_user: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_account(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
) -> User:
    """Local account for the authenticated caller; only active accounts pass."""
    user = user_service.get_or_create_account(
        db,
        current_user['uid'],
        current_user.get('email'),
        email_verified=current_user.get('email_verified', False),
        name=current_user.get('name'),
        role=current_user.get('role'),
    )
    if user.account_status != AccountStatus.ACTIVE:
        logger.warning(f"get_current_account: Inactive account - {user.id}, status: {user.account_status}")
        raise ForbiddenError("Account is not active", code="ACCOUNT_INACTIVE")
    return user


def require_admin(account: User = Depends(get_current_account)) -> User:
    if account.role != UserRole.ADMIN:
        logger.warning(f"require_admin: Unauthorized - user: {account.id}")
        raise ForbiddenError("Insufficient permissions")
    return account
