"""
api/routes/v1/users.py -- Account administration endpoints (admin only).

Routes:
  GET    /api/v1/users          -- list all accounts
  PATCH  /api/v1/users/{id}     -- change role and/or is_active
  DELETE /api/v1/users/{id}     -- delete an account

Guards on PATCH/DELETE:
  - An admin cannot deactivate or delete their own account.
  - The last active admin cannot be deactivated, demoted or deleted.

Deactivation takes effect immediately: the authenticator re-reads is_active
on every request, so outstanding access tokens stop working at once. It also
revokes the stored refresh token, so a later reactivation requires a fresh
login.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import ErrorDetail, UserPatch, UserResponse
from auth.dependencies import require_roles
from auth.models import Identity, Role, User
from auth.store import UserStore

router = APIRouter()

_require_admin = require_roles(Role.admin)


def _bad_request(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=400, detail=ErrorDetail(code=code, message=message).model_dump())


def _get_target(user_store: UserStore, user_id: int) -> User:
    target = user_store.find_by_id(user_id)
    if target is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message="User not found.").model_dump(),
        )
    return target


def _is_last_admin(user_store: UserStore, target: User) -> bool:
    return target.role == Role.admin.value and target.is_active and user_store.count_active_admins() <= 1


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, identity: Identity = Depends(_require_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    identity: Identity = Depends(_require_admin),
) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    target = _get_target(user_store, user_id)

    if body.role is None and body.is_active is None:
        raise _bad_request("no_changes", "No fields to update.")

    if body.is_active is False:
        if target.id == identity.id:
            raise _bad_request("self_deactivation", "You cannot deactivate your own account.")
        if _is_last_admin(user_store, target):
            raise _bad_request("last_admin", "Cannot deactivate the last active admin account.")
    if body.role is not None and body.role.value != Role.admin.value and _is_last_admin(user_store, target):
        raise _bad_request("last_admin", "Cannot demote the last active admin account.")

    if body.role is not None:
        user_store.update_role(user_id, body.role.value)
    if body.is_active is not None:
        user_store.update_active_flag(user_id, body.is_active)
    return UserResponse.from_user(_get_target(user_store, user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, identity: Identity = Depends(_require_admin)) -> Response:
    user_store: UserStore = request.app.state.user_store
    target = _get_target(user_store, user_id)
    if target.id == identity.id:
        raise _bad_request("self_deletion", "You cannot delete your own account.")
    if _is_last_admin(user_store, target):
        raise _bad_request("last_admin", "Cannot delete the last active admin account.")
    user_store.delete_user(user_id)
    return Response(status_code=204)
