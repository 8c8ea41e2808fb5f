"""User accounts."""

from ewc_tester.models import db
from ewc_tester.models.base import isoformat, new_uuid, utcnow


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(200))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    environments = db.relationship(
        "Environment", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )
    reports = db.relationship(
        "TestReport", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "createdAt": isoformat(self.created_at),
        }
