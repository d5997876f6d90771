import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from passlib.hash import bcrypt
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusnet.database import get_async_session
from campusnet.limiter import limiter
from campusnet.models.user_model import User
from campusnet.schemas.user_schemas import TokenOut, UserCreate, UserLogin, UserOut
from campusnet.utils.token_utils import create_access_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(request: Request, user: UserCreate, db: AsyncSession = Depends(get_async_session)):
    username_norm = user.username.strip()
    email_norm = str(user.email).strip().lower()

    # Check username OR email conflict in a single round-trip
    result = await db.execute(
        select(User).where(
            (User.username == username_norm) | (func.lower(User.email) == email_norm)
        )
    )
    existing = result.scalars().all()

    if any((u.email or "").strip().lower() == email_norm for u in existing):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")

    if any(u.username == username_norm for u in existing):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    new_user = User(
        username=username_norm,
        password=bcrypt.hash(user.password),
        email=email_norm,
        role="GENERAL",
    )

    try:
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("op=signup username=%s failed: %r", username_norm, e)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Signup failed")

    return UserOut(id=new_user.id, username=new_user.username, role=new_user.role)


@router.post("/login", response_model=TokenOut)
@limiter.limit("10/minute")
async def login(request: Request, credentials: UserLogin, db: AsyncSession = Depends(get_async_session)):
    result = await db.execute(select(User).where(User.username == credentials.username.strip()))
    user = result.scalar_one_or_none()

    if not user or not bcrypt.verify(credentials.password, user.password):
        logger.info("op=login username=%s rejected", credentials.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    return TokenOut(access_token=create_access_token(user))


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return UserOut(id=user.id, username=user.username, role=user.role)
