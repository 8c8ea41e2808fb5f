"""Test definitions, execution results and aggregated reports.

Free-form payloads (headers, body, validations, request/response snapshots,
validation outcomes, report result ids) are stored as JSON text and parsed
on every read.
"""

from ewc_tester.models import db
from ewc_tester.models.base import OwnedModel, isoformat, new_uuid, utcnow
from ewc_tester.utils.helpers import load_json

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
RESULT_STATUSES = ("passed", "failed", "error")
VALIDATION_CONDITIONS = ("equals", "contains", "exists", "notExists", "greaterThan", "lessThan")


class Test(db.Model):
    """A single HTTP call against an environment, with its expectations."""

    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    environment_id = db.Column(
        db.String(36), db.ForeignKey("environments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    credential_id = db.Column(
        db.String(36), db.ForeignKey("credentials.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    endpoint = db.Column(db.String(1000), nullable=False)
    endpoint_id = db.Column(db.String(100), index=True)  # endpoint catalog key
    method = db.Column(db.String(10), nullable=False, default="GET")
    headers = db.Column(db.Text)
    body = db.Column(db.Text)
    expected_status = db.Column(db.Integer, nullable=False, default=200)
    validations = db.Column(db.Text)
    use_alias_url = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    environment = db.relationship("Environment", back_populates="tests")
    credential = db.relationship("Credential")
    results = db.relationship(
        "TestResult", back_populates="test", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TestResult.executed_at.desc()",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "endpoint": self.endpoint,
            "endpointId": self.endpoint_id,
            "method": self.method,
            "headers": load_json(self.headers, {}),
            "body": load_json(self.body),
            "expectedStatus": self.expected_status,
            "validations": load_json(self.validations, []),
            "useAliasUrl": self.use_alias_url,
            "environmentId": self.environment_id,
            "credentialId": self.credential_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class TestResult(db.Model):
    """One execution of a Test. Only ``manual_status`` and ``notes`` change later."""

    __tablename__ = "test_results"
    __test__ = False

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    test_id = db.Column(
        db.String(36), db.ForeignKey("tests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    credential_id = db.Column(
        db.String(36), db.ForeignKey("credentials.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    status = db.Column(db.String(20), nullable=False)  # passed | failed | error
    manual_status = db.Column(db.String(20))  # tester override, same values
    response_time = db.Column(db.Integer, default=0)  # ms
    status_code = db.Column(db.Integer)
    request = db.Column(db.Text)
    response = db.Column(db.Text)
    validation_results = db.Column(db.Text)
    error = db.Column(db.Text)
    notes = db.Column(db.Text)
    executed_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)

    test = db.relationship("Test", back_populates="results")
    credential = db.relationship("Credential")

    @property
    def effective_status(self):
        return self.manual_status or self.status

    def to_dict(self, include_test=False):
        d = {
            "id": self.id,
            "testId": self.test_id,
            "credentialId": self.credential_id,
            "status": self.status,
            "manualStatus": self.manual_status,
            "effectiveStatus": self.effective_status,
            "responseTime": self.response_time,
            "statusCode": self.status_code,
            "request": load_json(self.request),
            "response": load_json(self.response),
            "validationResults": load_json(self.validation_results, []),
            "error": self.error,
            "notes": self.notes,
            "executedAt": isoformat(self.executed_at),
        }
        if include_test and self.test is not None:
            d["test"] = {
                "id": self.test.id,
                "name": self.test.name,
                "endpoint": self.test.endpoint,
                "method": self.test.method,
                "environmentId": self.test.environment_id,
                "environment": {
                    "id": self.test.environment.id,
                    "name": self.test.environment.name,
                    "type": self.test.environment.type,
                },
            }
            d["credential"] = self.credential.to_summary() if self.credential else None
        return d


class TestReport(OwnedModel):
    """Aggregated statistics over a user-chosen set of results."""

    __tablename__ = "test_reports"
    __test__ = False

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    grouping_type = db.Column(db.String(50), nullable=False, default="manual")
    grouping_value = db.Column(db.String(300))
    result_ids = db.Column(db.Text, nullable=False)
    total_tests = db.Column(db.Integer, nullable=False, default=0)
    passed_tests = db.Column(db.Integer, nullable=False, default=0)
    failed_tests = db.Column(db.Integer, nullable=False, default=0)
    error_tests = db.Column(db.Integer, nullable=False, default=0)
    avg_response_time = db.Column(db.Integer, nullable=False, default=0)
    generated_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)

    user = db.relationship("User", back_populates="reports")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "groupingType": self.grouping_type,
            "groupingValue": self.grouping_value,
            "resultIds": load_json(self.result_ids, []),
            "totalTests": self.total_tests,
            "passedTests": self.passed_tests,
            "failedTests": self.failed_tests,
            "errorTests": self.error_tests,
            "avgResponseTime": self.avg_response_time,
            "userId": self.user_id,
            "generatedAt": isoformat(self.generated_at),
        }
