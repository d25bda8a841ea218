from fastapi import Depends, HTTPException
from shopcore.utils.identity import CurrentUser, get_current_user

def require_admin(current_user: CurrentUser = Depends(get_current_user)):
    if current_user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
