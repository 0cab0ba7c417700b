"""
User Service — accounts, login, super-user administration, session lookup.

Rules live in ``tracker.services.identity``; this module loads and stores
``AppUser`` snapshots and owns the commits.
"""

import logging
from dataclasses import replace

from flask import current_app

from tracker.core.types import AppUser, UserRole
from tracker.models import db
from tracker.models.auth import UserRecord
from tracker.models.weekly_plan import WeeklyPlanRecord
from tracker.services import identity
from tracker.services.jwt_service import generate_access_token, get_issuer
from tracker.services.task_store import AccessMetaStore
from tracker.utils.crypto import hash_password, is_bcrypt_hash
from tracker.utils.helpers import unit_of_work

logger = logging.getLogger(__name__)


class UserStore:
    """Relational store for ``AppUser``."""

    def read(self) -> list[AppUser]:
        return [r.to_domain() for r in UserRecord.query.order_by(UserRecord.created_at.desc()).all()]

    def get(self, user_id: str) -> AppUser | None:
        record = db.session.get(UserRecord, user_id)
        return record.to_domain() if record else None

    def get_by_email(self, email: str) -> AppUser | None:
        record = UserRecord.query.filter_by(email=email.strip().lower()).first()
        return record.to_domain() if record else None

    def add(self, user: AppUser) -> AppUser:
        db.session.add(UserRecord().apply(user))
        db.session.flush()
        return user

    def save(self, user: AppUser) -> AppUser:
        record = db.session.get(UserRecord, user.id)
        record.apply(user)
        db.session.flush()
        return user

    def delete(self, user_id: str) -> None:
        record = db.session.get(UserRecord, user_id)
        if record is not None:
            db.session.delete(record)

    def read_session_user(self, users: list[AppUser], claims: dict | None) -> AppUser | None:
        """Resolve token claims to an approved profile, storing new provider profiles as pending."""
        user, new_profile = identity.resolve_session_user(users, claims, local_issuer=get_issuer())
        if new_profile is not None:
            self.add(new_profile)
            logger.info("Pending profile materialized from identity provider",
                        extra={"user_id": new_profile.id})
        return user


_store = UserStore()


# ═══════════════════════════════════════════════════════════════
# Registration & login
# ═══════════════════════════════════════════════════════════════
def register(data: dict) -> AppUser:
    """Register an account. Pending unless it is the bootstrap address."""
    cfg = current_app.config
    user = identity.register_user(
        _store.read(),
        name=data.get("name"),
        email=data.get("email"),
        password=data.get("password"),
        role=data.get("role") or UserRole.CLIENT.value,
        bootstrap_email=cfg.get("BOOTSTRAP_SUPER_USER_EMAIL"),
        min_password_length=cfg.get("PASSWORD_MIN_LENGTH", 4),
        bcrypt_rounds=cfg.get("BCRYPT_ROUNDS", 12),
    )
    with unit_of_work("register user"):
        _store.add(user)
    logger.info("User registered: %s (%s, %s)", user.email, user.role.value, user.status.value,
                extra={"user_id": user.id})
    return user


def login(email: str, password: str) -> dict:
    """Authenticate and issue an access token.

    Legacy plain-text passwords are rehashed on first successful login,
    and task meta is reconciled for the logged-in user.
    """
    from tracker.services import task_service

    user = identity.authenticate(_store.read(), email, password)
    if not is_bcrypt_hash(user.password_hash):
        user = replace(
            user,
            password_hash=hash_password(password.strip(), rounds=current_app.config.get("BCRYPT_ROUNDS", 12)),
        )
        with unit_of_work("rehash password"):
            _store.save(user)
        logger.info("Legacy password rehashed", extra={"user_id": user.id})

    task_service.sync_meta(user)
    token = generate_access_token(user)
    logger.info("Login: %s", user.email, extra={"user_id": user.id})
    return {**token, "user": user.to_dict()}


def resolve_session(claims: dict | None) -> AppUser | None:
    """Approved profile for verified token claims, or None."""
    if not claims or not claims.get("sub"):
        return None
    existing = _store.get(str(claims["sub"]))
    with unit_of_work("resolve session user"):
        return _store.read_session_user([existing] if existing else [], claims)


# ═══════════════════════════════════════════════════════════════
# Super-user administration
# ═══════════════════════════════════════════════════════════════
def list_users(actor: AppUser) -> dict:
    identity.ensure_acting_super_user(actor, "list users")
    users = _store.read()
    by_role = {role.value: [] for role in UserRole}
    for user in users:
        by_role[user.role.value].append(user.to_dict())
    pending = [u.to_dict() for u in users if u.status.value == "pending"]
    return {"items": [u.to_dict() for u in users], "total": len(users),
            "by_role": by_role, "pending": pending}


def decide(actor: AppUser, user_id: str, approve: bool, reason: str | None = None) -> AppUser:
    user = identity.decide_user_approval(_store.read(), actor, user_id, approve, reason)
    with unit_of_work("decide user approval"):
        _store.save(user)
    logger.info("User %s %s by %s", user.email, user.status.value, actor.email,
                extra={"user_id": user.id})
    return user


def delete(actor: AppUser, user_id: str) -> None:
    """Delete a user and null every reference that pointed at it."""
    users = _store.read()
    target = identity.check_user_deletion(users, actor, user_id)
    meta_store = AccessMetaStore()
    meta_by_id = meta_store.read()
    next_users, next_meta = identity.release_user_references(users, meta_by_id, user_id)

    with unit_of_work("delete user"):
        for user in next_users:
            if user != identity.find_by_id(users, user.id):
                _store.save(user)
        for task_id, meta in next_meta.items():
            if meta != meta_by_id[task_id]:
                meta_store.put(meta)
        WeeklyPlanRecord.query.filter_by(created_by_user_id=user_id).update(
            {"created_by_user_id": None}
        )
        _store.delete(user_id)
    logger.info("User deleted: %s by %s", target.email, actor.email, extra={"user_id": user_id})
