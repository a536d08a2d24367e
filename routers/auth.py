from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import Annotated, List
from datetime import datetime, timedelta
import traceback
from jose import JWTError, jwt
import os
from dotenv import load_dotenv

from models.user import Actor, UserRole
from database.operations import get_user_by_username
from logging_config import logger

# Load environment variables
load_dotenv()

# Tokens are issued by the external identity provider
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=True)

# JWT settings
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours

def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

# Helper to get current user from token
async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    logger.debug(f"Decoding token: {token[:10]}...")

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            logger.warning("Username missing from token")
            raise credentials_exception

        # Role and capability flags come from the stored profile, not the token,
        # so grants take effect without reissuing tokens
        user = await get_user_by_username(username)
        if user is None:
            logger.warning(f"User not found: {username}")
            raise credentials_exception

        logger.debug(f"User found: {username}")
        return user
    except JWTError as e:
        logger.error(f"JWT error: {str(e)}")
        raise credentials_exception
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting current user: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error validating credentials"
        )

async def get_current_actor(user: Annotated[dict, Depends(get_current_user)]) -> Actor:
    return Actor.from_user(user)

# Helper to check role
def check_user_role(allowed_roles: List[UserRole]):
    async def _check_user_role(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        required = [role.value for role in allowed_roles]
        logger.debug(f"Checking user role. User role: {actor.role.value}, Required roles: {required}")

        if actor.role not in allowed_roles:
            logger.warning(f"Insufficient permissions. User role: {actor.role.value}, Required roles: {required}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required roles: {required}"
            )

        logger.debug("Role check passed")
        return actor
    return _check_user_role
