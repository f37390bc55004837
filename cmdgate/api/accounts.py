"""
Login and admin-only account management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header

from .auth import admin_only
from .schemas import CreditsUpdateRequest, LoginResponse, UserCreateRequest
from ..core.errors import Conflict, ValidationError
from ..core.schema import Identity
from ..core.users import create_user, delete_user, list_users, resolve_api_key, set_credits

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
def login(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
    if not x_api_key:
        raise ValidationError("API key is required")

    identity, user = resolve_api_key(x_api_key)
    return LoginResponse(message="Login successful", userId=identity.user_id,
                         username=identity.username, role=identity.role, credits=user.credits)


@router.post("/users", status_code=201)
def add_user(body: UserCreateRequest, identity: Identity = Depends(admin_only)):
    user, api_key = create_user(body.username, body.email, body.role)
    data = {k: v for k, v in user.to_dict().items() if k != 'email'}
    data["apiKey"] = api_key
    return {"message": "User created successfully", "user": data}


@router.get("/users")
def get_users(identity: Identity = Depends(admin_only)):
    users = [user.to_dict() for user in list_users()]
    return {"users": users, "count": len(users)}


@router.put("/users/{user_id}/credits")
def put_user_credits(user_id: str, body: CreditsUpdateRequest,
                     identity: Identity = Depends(admin_only)):
    user = set_credits(user_id, body.credits)
    return {
        "message": "User credits updated successfully",
        "user": {"id": user.id, "username": user.username, "credits": user.credits},
    }


@router.delete("/users/{user_id}")
def remove_user(user_id: str, identity: Identity = Depends(admin_only)):
    if user_id == identity.user_id:
        raise Conflict("Admins cannot delete their own account")
    delete_user(user_id)
    return {"message": "User deleted successfully"}
