from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import timedelta

from app.api.deps import get_db
from ..models.user import User, ROLE_TENANT, ROLE_OWNER
from ..schemas.user import (
    UserCreate, UserResponse, UserLogin, Token, UserUpdate,
    SessionExchange, SessionResponse, RoleUpdate
)
from ..services.user_service import UserService
from ..services.auth_service import (
    create_access_token, verify_token, get_identity_verifier,
    FirebaseIdentityVerifier, ACCESS_TOKEN_EXPIRE_MINUTES
)

router = APIRouter()
security = HTTPBearer()

SELF_ASSIGNABLE_ROLES = (ROLE_TENANT, ROLE_OWNER)


async def resolve_user_from_token(db: AsyncSession, token: str) -> User:
    subject = verify_token(token)
    if subject is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )
    try:
        user_id = int(subject)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )
    user = await UserService.get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    return user


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db: AsyncSession = Depends(get_db)) -> User:
    return await resolve_user_from_token(db, credentials.credentials)


def issue_token(user: User) -> str:
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_access_token(
        data={"sub": str(user.id), "role": user.role, "email": user.email},
        expires_delta=access_token_expires
    )


@router.post("/register", response_model=UserResponse)
async def register_user(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    user = await UserService.create_user(db, user_data)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username or email already exists"
        )
    return user


@router.post("/login", response_model=Token)
async def login_user(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await UserService.authenticate_user(db, login_data.username, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password"
        )
    return {"access_token": issue_token(user), "token_type": "bearer"}


@router.post("/session", response_model=SessionResponse)
async def exchange_session(
    session_data: SessionExchange,
    db: AsyncSession = Depends(get_db),
    verifier: FirebaseIdentityVerifier = Depends(get_identity_verifier)
):
    """Trade an external identity token for an internal access token."""
    claims = await verifier.verify(session_data.id_token)
    user = await UserService.resolve_identity(db, claims)
    return {"access_token": issue_token(user), "token_type": "bearer", "user": user}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserResponse)
async def update_current_user(user_data: UserUpdate, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    updated_user = await UserService.update_user(db, current_user.id, user_data)
    if not updated_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return updated_user


@router.post("/set-role", response_model=UserResponse)
async def set_role(role_data: RoleUpdate, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    requested_role = role_data.role.strip().upper()
    if requested_role not in SELF_ASSIGNABLE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role. Allowed values: TENANT, OWNER"
        )
    return await UserService.set_role(db, current_user, requested_role)
