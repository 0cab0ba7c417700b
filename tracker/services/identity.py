"""
Identity & Role Model — roles, the registration gate, login rules and
lazy profile materialization.

Pure functions over ``AppUser`` snapshots; persistence lives in
``tracker.services.user_service``.

Roles (ascending privilege): client < admin < super_user.
  - managers (admin, super_user) see every task and drive the workflow
  - only super users decide task/user approvals and delete users

Registration gate:
  pending ──approve──▶ approved
     └─────reject────▶ rejected
The configured bootstrap account skips the gate and is created as an
approved super user.

Usage:
    from tracker.services.identity import is_manager, authenticate

    user = authenticate(users, "ada@acme.com", "secret")
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from email_validator import EmailNotValidError, validate_email

from tracker.core.exceptions import (
    AccessDenied,
    AccountNotApproved,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tracker.core.types import (
    ApprovalStatus,
    AppUser,
    TaskAccessMeta,
    UserRole,
    UserStatus,
    new_id,
    utcnow,
)
from tracker.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

_ROLE_RANK = {
    UserRole.CLIENT: 0,
    UserRole.ADMIN: 1,
    UserRole.SUPER_USER: 2,
}

# Roles a self-service registration may ask for.
REGISTRABLE_ROLES = (UserRole.CLIENT, UserRole.ADMIN)

DEFAULT_USER_REJECTION = "Rejected by super user"


# ═════════════════════════════════════════════════════════════════════════════
# Role predicates
# ═════════════════════════════════════════════════════════════════════════════

def role_rank(role: UserRole) -> int:
    return _ROLE_RANK[role]


def is_super_user(user: AppUser | None) -> bool:
    return user is not None and user.role is UserRole.SUPER_USER


def is_manager(user: AppUser | None) -> bool:
    return user is not None and role_rank(user.role) >= role_rank(UserRole.ADMIN)


def normalize_email(email: str | None) -> str:
    """Validate syntax and lower-case the whole address."""
    raw = (email or "").strip()
    if not raw:
        raise ValidationError("Email is required.", details={"email": "required"})
    try:
        valid = validate_email(raw, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})
    return valid.normalized.lower()


def find_by_email(users: list[AppUser], email: str) -> AppUser | None:
    email = email.strip().lower()
    return next((u for u in users if u.email == email), None)


def find_by_id(users: list[AppUser], user_id: str | None) -> AppUser | None:
    if user_id is None:
        return None
    return next((u for u in users if u.id == user_id), None)


# ═════════════════════════════════════════════════════════════════════════════
# Registration & login
# ═════════════════════════════════════════════════════════════════════════════

def register_user(
    users: list[AppUser],
    *,
    name: str,
    email: str,
    password: str,
    role: str | UserRole = UserRole.CLIENT,
    bootstrap_email: str | None = None,
    min_password_length: int = 4,
    bcrypt_rounds: int = 12,
    now: datetime | None = None,
) -> AppUser:
    """Build a new account from a registration form.

    Args:
        users: Existing accounts (for the uniqueness check).
        bootstrap_email: Address that is created as an approved super user.
        min_password_length: Minimum accepted password length.

    Returns:
        The new ``AppUser``; the caller persists it.

    Raises:
        ValidationError: missing name, bad email, short password, bad role.
        ConflictError: email already registered.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required.", details={"name": "required"})
    email = normalize_email(email)
    password = (password or "").strip()
    if len(password) < min_password_length:
        raise ValidationError(
            f"Password must be at least {min_password_length} characters.",
            details={"password": "too_short"},
        )
    if find_by_email(users, email) is not None:
        raise ConflictError("User", "email", email, message="This email is already registered.")

    now = now or utcnow()
    is_bootstrap = bool(bootstrap_email) and email == bootstrap_email.strip().lower()
    if is_bootstrap:
        requested_role = UserRole.SUPER_USER
    else:
        requested_role = UserRole.parse(role)
        if requested_role not in REGISTRABLE_ROLES:
            raise ValidationError(
                f"Invalid role '{role}'.",
                details={"role": [r.value for r in REGISTRABLE_ROLES]},
            )

    user = AppUser(
        id=new_id(),
        name=name,
        email=email,
        role=requested_role,
        status=UserStatus.APPROVED if is_bootstrap else UserStatus.PENDING,
        created_at=now,
        approved_at=now if is_bootstrap else None,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
    )
    if is_bootstrap:
        logger.info("Bootstrap super user registered", extra={"user_id": user.id})
    return user


def authenticate(users: list[AppUser], email: str, password: str) -> AppUser:
    """Check credentials and the registration gate.

    Raises:
        AuthenticationError: unknown email or wrong password.
        AccountNotApproved: account is pending or rejected.
    """
    email = (email or "").strip().lower()
    password = (password or "").strip()
    if not email or not password:
        raise AuthenticationError("Email and password are required.")

    user = find_by_email(users, email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password.")
    if user.status is not UserStatus.APPROVED:
        raise AccountNotApproved(user.status.value)
    return user


# ═════════════════════════════════════════════════════════════════════════════
# Super-user administration
# ═════════════════════════════════════════════════════════════════════════════

def ensure_acting_super_user(actor: AppUser | None, action: str) -> None:
    if not is_super_user(actor):
        raise AccessDenied(f"Only a super user can {action}.")
    if actor.status is not UserStatus.APPROVED:
        raise AccessDenied("Super user account must be approved.")


def decide_user_approval(
    users: list[AppUser],
    actor: AppUser,
    user_id: str,
    approve: bool,
    reason: str | None = None,
    now: datetime | None = None,
) -> AppUser:
    """Approve or reject a pending registration. Returns the updated user."""
    ensure_acting_super_user(actor, "approve or reject users")
    target = find_by_id(users, user_id)
    if target is None:
        raise NotFoundError("User", user_id)
    if target.status is not UserStatus.PENDING:
        raise ValidationError(
            "Only a pending user can be approved or rejected.",
            details={"status": target.status.value},
        )

    now = now or utcnow()
    if approve:
        return replace(
            target,
            status=UserStatus.APPROVED,
            approved_by_user_id=actor.id,
            approved_at=now,
            rejection_reason=None,
        )
    return replace(
        target,
        status=UserStatus.REJECTED,
        approved_by_user_id=actor.id,
        approved_at=now,
        rejection_reason=(reason or "").strip() or DEFAULT_USER_REJECTION,
    )


def check_user_deletion(users: list[AppUser], actor: AppUser, user_id: str) -> AppUser:
    """Return the user to delete, or raise if the actor may not delete it."""
    ensure_acting_super_user(actor, "delete users")
    if actor.id == user_id:
        raise ValidationError("You cannot delete your own account.")
    target = find_by_id(users, user_id)
    if target is None:
        raise NotFoundError("User", user_id)
    return target


def release_user_references(
    users: list[AppUser],
    meta_by_id: dict[str, TaskAccessMeta],
    user_id: str,
) -> tuple[list[AppUser], dict[str, TaskAccessMeta]]:
    """Drop a user and null every approver/owner/decider reference to it."""
    next_users = [
        replace(u, approved_by_user_id=None) if u.approved_by_user_id == user_id else u
        for u in users
        if u.id != user_id
    ]
    next_meta = {}
    for task_id, meta in meta_by_id.items():
        if meta.owner_user_id == user_id:
            meta = replace(meta, owner_user_id=None)
        if meta.decided_by_user_id == user_id:
            meta = replace(meta, decided_by_user_id=None)
        next_meta[task_id] = meta
    return next_users, next_meta


# ═════════════════════════════════════════════════════════════════════════════
# Session resolution
# ═════════════════════════════════════════════════════════════════════════════

def materialize_user_from_claims(claims: dict, now: datetime | None = None) -> AppUser:
    """Create a local profile from identity-provider token claims.

    Role comes from ``user_metadata.role`` and falls back to client when
    missing, unknown or not self-registrable. The profile enters pending,
    exactly like a registration form, and waits for a super user decision.
    """
    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject.")
    metadata = claims.get("user_metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}
    email = (claims.get("email") or "").strip().lower()
    name = (metadata.get("name") or claims.get("name") or "").strip()
    if not name:
        name = email.split("@")[0] if email else "User"
    role = UserRole.parse(metadata.get("role"), default=UserRole.CLIENT)
    if role not in REGISTRABLE_ROLES:
        role = UserRole.CLIENT
    now = now or utcnow()
    return AppUser(
        id=str(user_id),
        name=name,
        email=email,
        role=role,
        status=UserStatus.PENDING,
        created_at=now,
    )


def resolve_session_user(
    users: list[AppUser],
    claims: dict | None,
    local_issuer: str | None = None,
) -> tuple[AppUser | None, AppUser | None]:
    """Find the caller's profile for verified token claims.

    Returns ``(user, new_profile)``. ``user`` is the approved session user
    or None. ``new_profile`` is set when identity-provider claims had no
    local profile yet: it is pending and must be persisted so a super user
    can decide on it. Tokens we issued ourselves (``iss == local_issuer``)
    never materialize a profile: a missing local user means it was deleted.
    """
    if not claims:
        return None, None
    user = find_by_id(users, str(claims.get("sub"))) if claims.get("sub") else None
    if user is None:
        if local_issuer is not None and claims.get("iss") == local_issuer:
            return None, None
        return None, materialize_user_from_claims(claims)
    if user.status is not UserStatus.APPROVED:
        return None, None
    return user, None


def approval_for_creator(user: AppUser | None) -> ApprovalStatus:
    """Approval state a task gets when this user creates (or re-syncs) it."""
    return ApprovalStatus.APPROVED if is_manager(user) else ApprovalStatus.PENDING
