"""
Identity & role model tests.

Covers role ranking, the registration gate, login rules, super-user
administration and lazy profile materialization from token claims.
"""

from dataclasses import replace

import pytest

from tracker.core.exceptions import (
    AccessDenied,
    AccountNotApproved,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tracker.core.types import ApprovalStatus, UserRole, UserStatus
from tracker.services import identity
from tracker.utils.crypto import hash_password, is_bcrypt_hash

BOOTSTRAP = "root@acme.com"


def _register(users=(), **overrides):
    form = dict(name="Ada", email="ada@acme.com", password="secret", role="client",
                bootstrap_email=BOOTSTRAP, bcrypt_rounds=4)
    form.update(overrides)
    return identity.register_user(list(users), **form)


# ═════════════════════════════════════════════════════════════════════════
# Roles
# ═════════════════════════════════════════════════════════════════════════

class TestRoles:
    def test_rank_order(self):
        assert identity.role_rank(UserRole.CLIENT) < identity.role_rank(UserRole.ADMIN)
        assert identity.role_rank(UserRole.ADMIN) < identity.role_rank(UserRole.SUPER_USER)

    def test_manager_predicates(self, make_user):
        assert identity.is_manager(make_user(UserRole.ADMIN))
        assert identity.is_manager(make_user(UserRole.SUPER_USER))
        assert not identity.is_manager(make_user(UserRole.CLIENT))
        assert not identity.is_manager(None)
        assert identity.is_super_user(make_user(UserRole.SUPER_USER))
        assert not identity.is_super_user(make_user(UserRole.ADMIN))

    def test_approval_for_creator(self, make_user):
        assert identity.approval_for_creator(make_user(UserRole.ADMIN)) is ApprovalStatus.APPROVED
        assert identity.approval_for_creator(make_user(UserRole.CLIENT)) is ApprovalStatus.PENDING


# ═════════════════════════════════════════════════════════════════════════
# Registration
# ═════════════════════════════════════════════════════════════════════════

class TestRegistration:
    def test_new_account_is_pending(self):
        user = _register(email="  Ada@ACME.com ")
        assert user.email == "ada@acme.com"
        assert user.status is UserStatus.PENDING
        assert user.role is UserRole.CLIENT
        assert is_bcrypt_hash(user.password_hash)

    def test_admin_role_may_be_requested(self):
        assert _register(role="admin").role is UserRole.ADMIN

    def test_super_user_role_cannot_be_requested(self):
        with pytest.raises(ValidationError):
            _register(role="super_user")

    def test_bootstrap_account(self):
        user = _register(email="ROOT@acme.com", role="client")
        assert user.role is UserRole.SUPER_USER
        assert user.status is UserStatus.APPROVED
        assert user.approved_at is not None

    def test_duplicate_email(self):
        first = _register()
        with pytest.raises(ConflictError) as exc:
            _register([first], email="ADA@acme.com")
        assert str(exc.value) == "This email is already registered."

    @pytest.mark.parametrize("overrides", [
        {"name": "  "},
        {"email": "not-an-email"},
        {"email": ""},
        {"password": "abc"},
    ])
    def test_invalid_forms(self, overrides):
        with pytest.raises(ValidationError):
            _register(**overrides)


# ═════════════════════════════════════════════════════════════════════════
# Login
# ═════════════════════════════════════════════════════════════════════════

class TestAuthenticate:
    def _approved(self):
        return replace(_register(), status=UserStatus.APPROVED)

    def test_success(self):
        user = self._approved()
        assert identity.authenticate([user], "ADA@acme.com", "secret") == user

    def test_wrong_password(self):
        with pytest.raises(AuthenticationError) as exc:
            identity.authenticate([self._approved()], "ada@acme.com", "nope")
        assert str(exc.value) == "Invalid email or password."

    def test_unknown_email(self):
        with pytest.raises(AuthenticationError):
            identity.authenticate([], "ghost@acme.com", "secret")

    def test_pending_account(self):
        with pytest.raises(AccountNotApproved) as exc:
            identity.authenticate([_register()], "ada@acme.com", "secret")
        assert str(exc.value) == "Account is pending approval."

    def test_rejected_account(self):
        user = replace(_register(), status=UserStatus.REJECTED)
        with pytest.raises(AccountNotApproved) as exc:
            identity.authenticate([user], "ada@acme.com", "secret")
        assert str(exc.value) == "Account was rejected."

    def test_legacy_plain_text_password(self):
        user = replace(self._approved(), password_hash="secret")
        assert identity.authenticate([user], "ada@acme.com", "secret") == user

    def test_hash_round_trip(self):
        assert identity.authenticate(
            [replace(self._approved(), password_hash=hash_password("other", rounds=4))],
            "ada@acme.com", "other",
        )


# ═════════════════════════════════════════════════════════════════════════
# Super-user administration
# ═════════════════════════════════════════════════════════════════════════

class TestAdministration:
    def test_approve_pending_user(self, make_user):
        chief = make_user(UserRole.SUPER_USER)
        pending = make_user(UserRole.CLIENT, status=UserStatus.PENDING)
        approved = identity.decide_user_approval([chief, pending], chief, pending.id, True)
        assert approved.status is UserStatus.APPROVED
        assert approved.approved_by_user_id == chief.id

    def test_reject_with_default_reason(self, make_user):
        chief = make_user(UserRole.SUPER_USER)
        pending = make_user(UserRole.ADMIN, status=UserStatus.PENDING)
        rejected = identity.decide_user_approval([chief, pending], chief, pending.id, False)
        assert rejected.status is UserStatus.REJECTED
        assert rejected.rejection_reason == "Rejected by super user"

    def test_only_pending_users_are_decided(self, make_user):
        chief = make_user(UserRole.SUPER_USER)
        user = make_user(UserRole.CLIENT)
        with pytest.raises(ValidationError):
            identity.decide_user_approval([chief, user], chief, user.id, True)

    def test_admin_cannot_decide(self, make_user):
        admin = make_user(UserRole.ADMIN)
        pending = make_user(UserRole.CLIENT, status=UserStatus.PENDING)
        with pytest.raises(AccessDenied):
            identity.decide_user_approval([admin, pending], admin, pending.id, True)

    def test_unknown_user(self, make_user):
        chief = make_user(UserRole.SUPER_USER)
        with pytest.raises(NotFoundError):
            identity.decide_user_approval([chief], chief, "missing", True)

    def test_cannot_delete_self(self, make_user):
        chief = make_user(UserRole.SUPER_USER)
        with pytest.raises(ValidationError):
            identity.check_user_deletion([chief], chief, chief.id)

    def test_release_references(self, make_user, make_task, make_meta):
        chief = make_user(UserRole.SUPER_USER)
        gone = make_user(UserRole.ADMIN)
        approved_by_gone = replace(make_user(UserRole.CLIENT), approved_by_user_id=gone.id)
        task = make_task()
        meta = replace(make_meta(task, owner=gone), decided_by_user_id=gone.id)

        users, metas = identity.release_user_references(
            [chief, gone, approved_by_gone], {task.id: meta}, gone.id,
        )
        assert [u.id for u in users] == [chief.id, approved_by_gone.id]
        assert users[1].approved_by_user_id is None
        assert metas[task.id].owner_user_id is None
        assert metas[task.id].decided_by_user_id is None


# ═════════════════════════════════════════════════════════════════════════
# Session resolution
# ═════════════════════════════════════════════════════════════════════════

class TestSessionResolution:
    def test_existing_user(self, make_user):
        user = make_user(UserRole.ADMIN)
        assert identity.resolve_session_user([user], {"sub": user.id}) == (user, None)

    def test_unapproved_user_resolves_to_none(self, make_user):
        user = make_user(UserRole.CLIENT, status=UserStatus.PENDING)
        assert identity.resolve_session_user([user], {"sub": user.id}) == (None, None)

    def test_provider_claims_create_pending_profile(self):
        claims = {"sub": "ext-1", "email": "Eve@Acme.com", "user_metadata": {"role": "admin", "name": "Eve"}}
        user, profile = identity.resolve_session_user([], claims, local_issuer="change-request-tracker")
        assert user is None
        assert profile.id == "ext-1"
        assert profile.email == "eve@acme.com"
        assert profile.name == "Eve"
        assert profile.role is UserRole.ADMIN
        assert profile.status is UserStatus.PENDING
        assert profile.approved_at is None

    def test_provider_metadata_cannot_claim_super_user(self):
        claims = {"sub": "idp-1", "email": "mallory@x.com", "iss": "supabase",
                  "user_metadata": {"role": "super_user"}}
        user, profile = identity.resolve_session_user([], claims, local_issuer="change-request-tracker")
        assert user is None
        assert profile.role is UserRole.CLIENT
        assert profile.status is UserStatus.PENDING

    def test_materialized_profile_stays_gated_until_approved(self):
        claims = {"sub": "ext-3", "email": "ann@acme.com"}
        _, profile = identity.resolve_session_user([], claims)
        assert identity.resolve_session_user([profile], claims) == (None, None)

    def test_unknown_metadata_role_defaults_to_client(self):
        _, profile = identity.resolve_session_user([], {"sub": "ext-2", "user_metadata": {"role": "owner"}})
        assert profile.role is UserRole.CLIENT
        assert profile.name == "User"

    def test_local_token_for_deleted_user(self):
        claims = {"sub": "gone", "iss": "change-request-tracker"}
        assert identity.resolve_session_user([], claims, local_issuer="change-request-tracker") == (None, None)
