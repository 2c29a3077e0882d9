"""Shared dependencies for the Gamification Service."""

from typing import Optional
from aiocache import Cache
import structlog
from jose import jwt, JWTError
from datetime import datetime, timedelta
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import settings
from app.generation.content_generator import GeminiContentGenerator

logger = structlog.get_logger()

# Security
security = HTTPBearer()


async def build_cache() -> Cache:
    """Redis cache when configured and reachable, in-memory otherwise."""
    if settings.REDIS_URL:
        try:
            cache = Cache.from_url(settings.REDIS_URL)
            await cache.exists("health_check")  # Test connection
            logger.info("Redis cache connection established")
            return cache
        except Exception as e:
            logger.warning(f"Redis cache not available: {e}")

    return Cache(Cache.MEMORY)


def build_content_generator() -> GeminiContentGenerator:
    return GeminiContentGenerator(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        base_url=settings.GEMINI_BASE_URL,
        timeout=settings.GENERATION_TIMEOUT,
        max_items=settings.GENERATION_MAX_ITEMS
    )


def get_cache(request: Request) -> Optional[Cache]:
    return getattr(request.app.state, "cache", None)


def get_content_generator(request: Request) -> GeminiContentGenerator:
    generator = getattr(request.app.state, "content_generator", None)
    if generator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Content generation is not available"
        )
    return generator


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Create JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Get the verified caller from the identity provider's JWT."""
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]

    return {
        "user_id": str(user_id),
        "username": payload.get("username"),
        "roles": list(roles)
    }


async def require_organizer(current_user: dict = Depends(get_current_user)):
    """Only organizers or system callers may author challenges and achievements."""
    if not set(current_user["roles"]) & set(settings.ORGANIZER_ROLES):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return current_user
