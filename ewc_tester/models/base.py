"""
OwnedModel — Abstract base class for user-owned models.

Environments and reports belong to the user who created them. Models that
need that ownership inherit from OwnedModel instead of db.Model directly.
This adds:
  - user_id FK column with index
  - query_for_user(user_id) classmethod
  - timestamp helpers shared by every model module
"""

import uuid
from datetime import datetime, timezone

from ewc_tester.models import db


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def as_utc(value):
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value):
    value = as_utc(value)
    return value.isoformat() if value else None


class OwnedModel(db.Model):
    """Abstract base for user-owned tables."""
    __abstract__ = True

    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_user(cls, user_id):
        """Return a query filtered by user_id."""
        return cls.query.filter_by(user_id=user_id)
