"""
Phase Progress Engine
User model.

Only the fields the engine needs to attribute work and decisions are kept
here; account management lives with the auth collaborator.
"""

from datetime import datetime, timezone

from app.models import db

USER_ROLES = ("engineer", "supervisor", "administrator")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(
        db.String(20), nullable=False, default="engineer",
        comment="engineer | supervisor | administrator",
    )
    job_description = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('engineer', 'supervisor', 'administrator')",
            name="ck_users_role",
        ),
    )

    @property
    def is_engineer(self) -> bool:
        return self.role == "engineer"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "job_description": self.job_description,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
