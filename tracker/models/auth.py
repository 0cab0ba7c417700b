"""
Account model — registered users and their approval linkage.

``password_hash`` is NULL for accounts materialized from identity-provider
tokens; those users never log in with a password here.
"""

from datetime import datetime, timezone

from tracker.core.types import AppUser, UserRole, UserStatus
from tracker.models import as_utc, db


class UserRecord(db.Model):
    __tablename__ = "app_users"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(320), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), nullable=False, default=UserRole.CLIENT.value)  # client, admin, super_user
    status = db.Column(db.String(20), nullable=False, default=UserStatus.PENDING.value)  # pending, approved, rejected
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    approved_by_user_id = db.Column(
        db.String(64), db.ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True,
    )
    approved_at = db.Column(db.DateTime(timezone=True))
    rejection_reason = db.Column(db.Text)

    def to_domain(self) -> AppUser:
        return AppUser(
            id=self.id,
            name=self.name,
            email=self.email,
            role=UserRole.parse(self.role, default=UserRole.CLIENT),
            status=UserStatus(self.status),
            created_at=as_utc(self.created_at),
            approved_by_user_id=self.approved_by_user_id,
            approved_at=as_utc(self.approved_at),
            rejection_reason=self.rejection_reason,
            password_hash=self.password_hash,
        )

    def apply(self, user: AppUser) -> "UserRecord":
        self.id = user.id
        self.name = user.name
        self.email = user.email
        self.password_hash = user.password_hash
        self.role = user.role.value
        self.status = user.status.value
        self.created_at = user.created_at
        self.approved_by_user_id = user.approved_by_user_id
        self.approved_at = user.approved_at
        self.rejection_reason = user.rejection_reason
        return self

    def __repr__(self):
        return f"<UserRecord {self.email} role={self.role} status={self.status}>"
