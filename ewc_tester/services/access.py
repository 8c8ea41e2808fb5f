"""
Ownership lookups shared by every resource service.

Environments (and reports) belong to a user; credentials, tests and results
inherit ownership through their environment.  Each lookup raises
NotFoundError for a missing row and AuthorizationError when the row belongs
to someone else.
"""

from sqlalchemy import select

from ewc_tester.core.exceptions import AuthorizationError, NotFoundError
from ewc_tester.models import db
from ewc_tester.models.environment import Credential, Environment
from ewc_tester.models.testing import Test, TestReport, TestResult


def _check_owner(owner_id, user_id):
    if owner_id != user_id:
        raise AuthorizationError()


def get_owned_environment(environment_id: str, user_id: str) -> Environment:
    env = db.session.get(Environment, environment_id) if environment_id else None
    if env is None:
        raise NotFoundError("Environment", environment_id)
    _check_owner(env.user_id, user_id)
    return env


def get_owned_credential(credential_id: str, user_id: str) -> Credential:
    cred = db.session.get(Credential, credential_id) if credential_id else None
    if cred is None:
        raise NotFoundError("Credential", credential_id)
    _check_owner(cred.environment.user_id, user_id)
    return cred


def get_owned_test(test_id: str, user_id: str) -> Test:
    test = db.session.get(Test, test_id) if test_id else None
    if test is None:
        raise NotFoundError("Test", test_id)
    _check_owner(test.environment.user_id, user_id)
    return test


def get_owned_result(result_id: str, user_id: str) -> TestResult:
    result = db.session.get(TestResult, result_id) if result_id else None
    if result is None:
        raise NotFoundError("Test result", result_id)
    _check_owner(result.test.environment.user_id, user_id)
    return result


def get_owned_report(report_id: str, user_id: str) -> TestReport:
    report = db.session.get(TestReport, report_id) if report_id else None
    if report is None:
        raise NotFoundError("Report", report_id)
    _check_owner(report.user_id, user_id)
    return report


def owned_environment_ids(user_id: str):
    """Subquery of the user's environment ids, for scoping joins."""
    return select(Environment.id).where(Environment.user_id == user_id)
