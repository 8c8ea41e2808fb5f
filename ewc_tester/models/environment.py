"""Target Salesforce orgs and the EWC credentials used against them."""

from ewc_tester.models import db
from ewc_tester.models.base import OwnedModel, isoformat, new_uuid, utcnow

ENVIRONMENT_TYPES = ("production", "sandbox", "scratch")
AUTH_TYPES = ("apikey", "oauth2")


class Environment(OwnedModel):
    """One configured Salesforce org.

    Connected App secret and refresh token are stored encrypted
    (see ewc_tester.utils.crypto); the short-lived access token is stored
    as issued so verification calls can use it directly.
    """

    __tablename__ = "environments"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # production | sandbox | scratch
    instance_url = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text)
    active = db.Column(db.Boolean, default=True, nullable=False)

    verification_enabled = db.Column(db.Boolean, default=False, nullable=False)
    verification_bearer_token = db.Column(db.Text)  # OAuth access token
    sf_client_id = db.Column(db.String(500))
    sf_client_secret = db.Column(db.Text)  # Encrypted
    sf_refresh_token = db.Column(db.Text)  # Encrypted
    sf_token_expires_at = db.Column(db.DateTime(timezone=True))

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "name", name="uq_environment_user_name"),
    )

    user = db.relationship("User", back_populates="environments")
    credentials = db.relationship(
        "Credential", back_populates="environment", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Credential.created_at.desc()",
    )
    tests = db.relationship(
        "Test", back_populates="environment", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Test.created_at.desc()",
    )

    @property
    def has_client_credentials(self):
        return bool(self.sf_client_id and self.sf_client_secret)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "instanceUrl": self.instance_url,
            "description": self.description,
            "active": self.active,
            "verificationEnabled": self.verification_enabled,
            "sfConnectedAppClientId": self.sf_client_id,
            "hasClientSecret": bool(self.sf_client_secret),
            "hasRefreshToken": bool(self.sf_refresh_token),
            "sfTokenExpiresAt": isoformat(self.sf_token_expires_at),
            "userId": self.user_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class Credential(db.Model):
    """EWC member credentials for one environment.

    ``auth_type`` decides which secret columns are populated:
    apikey → api_key; oauth2 → client_id + client_secret.
    """

    __tablename__ = "credentials"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    environment_id = db.Column(
        db.String(36), db.ForeignKey("environments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    auth_type = db.Column(db.String(20), nullable=False, default="apikey")  # apikey | oauth2
    org_name = db.Column(db.String(200), nullable=False)
    region_scheme = db.Column(db.String(100), nullable=False)
    member_id = db.Column(db.String(100), nullable=False)
    branch_id = db.Column(db.String(100), nullable=False)
    api_key = db.Column(db.Text)  # Encrypted
    client_id = db.Column(db.String(500))
    client_secret = db.Column(db.Text)  # Encrypted
    description = db.Column(db.Text)
    active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    environment = db.relationship("Environment", back_populates="credentials")

    def to_dict(self):
        """Non-secret fields only; services add decrypted secrets for the owner."""
        return {
            "id": self.id,
            "environmentId": self.environment_id,
            "authType": self.auth_type,
            "orgName": self.org_name,
            "regionScheme": self.region_scheme,
            "memberId": self.member_id,
            "branchId": self.branch_id,
            "clientId": self.client_id,
            "description": self.description,
            "active": self.active,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def to_summary(self):
        return {
            "id": self.id,
            "orgName": self.org_name,
            "authType": self.auth_type,
            "memberId": self.member_id,
            "branchId": self.branch_id,
            "regionScheme": self.region_scheme,
            "active": self.active,
        }
