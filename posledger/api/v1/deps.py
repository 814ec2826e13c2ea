from typing import Optional
from fastapi import Header, HTTPException, status


async def require_account(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Every collection request is scoped by the X-User-Id header."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID required")
    return x_user_id
