"""
Report API tests — generation totals, ownership filtering, XLSX export.
"""

from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from openpyxl import load_workbook

from ewc_tester.services.report_service import XLSX_MIMETYPE


@pytest.fixture()
def results(api_test, apikey_credential, result_factory):
    now = datetime.now(timezone.utc)
    return [
        result_factory(api_test["id"], apikey_credential["id"], status="passed", response_time=100,
                       executed_at=now - timedelta(minutes=3)),
        result_factory(api_test["id"], apikey_credential["id"], status="failed", response_time=201,
                       executed_at=now - timedelta(minutes=2), manual_status="passed"),
        result_factory(api_test["id"], apikey_credential["id"], status="error", response_time=0,
                       executed_at=now - timedelta(minutes=1)),
    ]


def _generate(client, headers, ids, **extra):
    payload = {"title": "Sprint 12 regression", "resultIds": ids}
    payload.update(extra)
    return client.post("/api/v1/reports/generate", json=payload, headers=headers)


def test_generate_counts_effective_status(client, auth_headers, results, user):
    ids = [r.id for r in results]
    res = _generate(client, auth_headers, ids, description="Nightly run")
    assert res.status_code == 201
    body = res.get_json()
    assert body["success"] is True
    report = body["report"]
    assert report["title"] == "Sprint 12 regression"
    assert report["description"] == "Nightly run"
    assert report["groupingType"] == "manual"
    assert report["totalTests"] == 3
    assert report["passedTests"] == 2
    assert report["failedTests"] == 0
    assert report["errorTests"] == 1
    assert report["avgResponseTime"] == 100
    assert report["resultIds"] == ids
    assert report["userId"] == user.id


def test_generate_keeps_requested_order_and_drops_duplicates(client, auth_headers, results):
    ids = [results[2].id, results[0].id, results[2].id]
    report = _generate(client, auth_headers, ids).get_json()["report"]
    assert report["resultIds"] == [results[2].id, results[0].id]
    assert report["totalTests"] == 2


@pytest.mark.parametrize("payload", [
    {},
    {"title": "", "resultIds": ["x"]},
    {"title": "T", "resultIds": []},
    {"title": "T", "resultIds": "x"},
])
def test_generate_validation(client, auth_headers, payload):
    res = client.post("/api/v1/reports/generate", json=payload, headers=auth_headers)
    assert res.status_code == 400
    assert res.get_json()["error"] == "Invalid request. Title and resultIds are required."


@pytest.mark.parametrize("field,value", [
    ("description", 5),
    ("groupingType", ["tag"]),
    ("groupingValue", {"v": 1}),
])
def test_generate_rejects_non_string_text_fields(client, auth_headers, results, field, value):
    res = _generate(client, auth_headers, [results[0].id], **{field: value})
    assert res.status_code == 400
    assert field in res.get_json()["details"]


def test_generate_with_no_owned_results(client, other_headers, results):
    res = _generate(client, other_headers, [r.id for r in results])
    assert res.status_code == 404


def test_generate_ignores_foreign_ids(client, auth_headers, results):
    report = _generate(client, auth_headers, [results[0].id, "not-mine"]).get_json()["report"]
    assert report["resultIds"] == [results[0].id]
    assert report["totalTests"] == 1


def test_list_get_delete(client, auth_headers, other_headers, results):
    report = _generate(client, auth_headers, [results[0].id]).get_json()["report"]

    listed = client.get("/api/v1/reports", headers=auth_headers).get_json()
    assert [r["id"] for r in listed] == [report["id"]]
    assert client.get("/api/v1/reports", headers=other_headers).get_json() == []

    assert client.get(f"/api/v1/reports/{report['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/v1/reports/{report['id']}", headers=other_headers).status_code == 403

    assert client.delete(f"/api/v1/reports/{report['id']}", headers=auth_headers).get_json() == {"success": True}
    assert client.get(f"/api/v1/reports/{report['id']}", headers=auth_headers).status_code == 404


def test_download_xlsx(client, auth_headers, results):
    ids = [results[1].id, results[0].id]
    report = _generate(client, auth_headers, ids, groupingType="endpoint",
                       groupingValue="deposit-creation").get_json()["report"]
    client.patch(f"/api/v1/results/{results[1].id}", json={"notes": "Re-checked by hand"}, headers=auth_headers)

    res = client.get(f"/api/v1/reports/{report['id']}/download", headers=auth_headers)
    assert res.status_code == 200
    assert res.mimetype == XLSX_MIMETYPE
    assert "attachment" in res.headers["Content-Disposition"]
    assert ".xlsx" in res.headers["Content-Disposition"]

    wb = load_workbook(BytesIO(res.data))
    assert wb.sheetnames == ["Summary", "Results"]

    summary = wb["Summary"]
    assert summary["A1"].value == "Test Report: Sprint 12 regression"
    metrics = {summary.cell(row=r, column=1).value: summary.cell(row=r, column=2).value
               for r in range(7, 14)}
    assert metrics["Grouping"] == "endpoint: deposit-creation"
    assert metrics["Total tests"] == 2
    assert metrics["Passed"] == 2
    assert metrics["Pass rate"] == "100%"

    sheet = wb["Results"]
    headers = [c.value for c in sheet[1]]
    assert headers[:6] == ["#", "Test", "Method", "Endpoint", "Credential", "Status"]
    rows = list(sheet.iter_rows(min_row=2, values_only=True))
    assert len(rows) == 2
    assert rows[0][0] == 1
    assert rows[0][1] == "Create deposit"
    assert rows[0][4] == "Acme Lettings"
    assert rows[0][5] == "PASSED"
    assert rows[0][11] == "Re-checked by hand"


def test_download_foreign_report(client, auth_headers, other_headers, results):
    report = _generate(client, auth_headers, [results[0].id]).get_json()["report"]
    res = client.get(f"/api/v1/reports/{report['id']}/download", headers=other_headers)
    assert res.status_code == 403
