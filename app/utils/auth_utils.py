from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database import get_supabase_client
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

def verify_supabase_token(token: str):
    """Verify Supabase JWT token"""
    try:
        user = get_supabase_client().auth.get_user(token)
        if user and user.user:
            return user.user
        return None
    except Exception as e:
        logger.error(f"Supabase token verification failed: {e}")
        return None

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Get current user from Supabase JWT token"""
    token = credentials.credentials

    user = verify_supabase_token(token)
    if user:
        return {
            "id": user.id,
            "email": user.email,
            "metadata": user.user_metadata
        }

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials"
    )
