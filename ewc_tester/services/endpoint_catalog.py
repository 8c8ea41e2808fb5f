"""
EWC API endpoint catalog.

Every endpoint the tester knows about, as published in the EWC technical
documentation.  Tests reference catalog entries by ``id`` (stored as
``Test.endpoint_id``); the derived history queries filter on that key.

Alias URLs (API-key credentials only) are the ``/v2/`` variants.  When
``alias_auth_in_url`` is set the member id, branch id and API key are part
of the path and no AccessToken header is sent.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

DEPOSIT_CREATION = "deposit-creation"
ADD_ADDITIONAL_TENANT = "add-additional-tenant"


@dataclass(frozen=True)
class ApiEndpoint:
    """One catalog entry."""
    id: str
    name: str
    description: str
    endpoint: str
    method: str
    category: str
    expected_status: int = 200
    path_param: str | None = None
    path_param_placeholder: str | None = None
    alias_endpoint: str | None = None
    alias_auth_in_url: bool = False

    @property
    def supports_alias_url(self) -> bool:
        return self.alias_endpoint is not None

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "id": d["id"],
            "name": d["name"],
            "description": d["description"],
            "endpoint": d["endpoint"],
            "method": d["method"],
            "category": d["category"],
            "expectedStatus": d["expected_status"],
            "requiresPathParam": self.path_param is not None,
            "pathParamName": d["path_param"],
            "pathParamPlaceholder": d["path_param_placeholder"],
            "supportsAliasUrl": self.supports_alias_url,
            "aliasEndpoint": d["alias_endpoint"],
            "aliasAuthInUrl": d["alias_auth_in_url"],
        }


API_ENDPOINTS: list[ApiEndpoint] = [
    # ── Deposit Management ───────────────────────────────────────────────
    ApiEndpoint(
        DEPOSIT_CREATION, "Deposit Creation",
        "Create a new deposit protection (tenancy)",
        "/services/apexrest/depositcreation", "POST", "Deposit Management",
        expected_status=201,
        alias_endpoint="/services/apexrest/v2/CreateDeposit",
    ),
    ApiEndpoint(
        "deposit-update", "Deposit Update",
        "Update an existing deposit protection",
        "/services/apexrest/depositupdate", "POST", "Deposit Management",
    ),
    ApiEndpoint(
        "deposit-status", "Creation Status Check",
        "Check the status of a deposit creation or update",
        "/services/apexrest/CreateDepositStatus/{batch_id}", "GET", "Deposit Management",
        path_param="batch_id", path_param_placeholder="ERR-04238",
        alias_endpoint="/services/apexrest/v2/CreateDepositStatus/{member_id}/{branch_id}/{api_key}/{batch_id}",
        alias_auth_in_url=True,
    ),
    ApiEndpoint(
        "tenancy-info", "Tenancy Information",
        "Get summary information about a deposit",
        "/services/apexrest/tenancyinformation/{DAN}", "GET", "Deposit Management",
        path_param="DAN", path_param_placeholder="EWC00004420",
        alias_endpoint="/services/apexrest/v2/TenancyInformation/{member_id}/{branch_id}/{api_key}/{DAN}",
        alias_auth_in_url=True,
    ),
    ApiEndpoint(
        "transfer-deposit", "Transfer Deposit",
        "Transfer a deposit to another member (inter-member transfer)",
        "/services/apexrest/transfer", "POST", "Deposit Management",
    ),
    ApiEndpoint(
        "transfer-branch-deposit", "Transfer Branch Deposit",
        "Transfer a deposit to another branch within the same member",
        "/services/apexrest/transferBranch/{DAN}", "POST", "Deposit Management",
        path_param="DAN", path_param_placeholder="NI00004420",
    ),
    ApiEndpoint(
        "all-tenancies", "All Registered Tenancies",
        "Get list of all registered tenancies",
        "/services/apexrest/alltenanciesregistered", "GET", "Deposit Management",
        alias_endpoint="/services/apexrest/v2/alltenanciesregistered/{member_id}/{branch_id}/{api_key}/",
        alias_auth_in_url=True,
    ),
    ApiEndpoint(
        "mark-depository-managed", "Mark Deposit as Depository Managed",
        "Mark a deposit as depository managed",
        "/services/apexrest/depositorymanaged", "POST", "Deposit Management",
    ),
    ApiEndpoint(
        "delete-deposit", "Delete Deposit",
        "Delete a deposit by DAN",
        "/services/apexrest/delete/{DAN}", "GET", "Deposit Management",
        path_param="DAN", path_param_placeholder="EWC00004420",
    ),
    # ── Search ───────────────────────────────────────────────────────────
    ApiEndpoint(
        "landlords-search", "Landlords Search",
        "Search for existing non-member landlords",
        "/services/apexrest/nonmemberlandlord", "GET", "Search",
        alias_endpoint="/services/apexrest/v2/landlord/{member_id}/{branch_id}/{api_key}/",
        alias_auth_in_url=True,
    ),
    ApiEndpoint(
        "properties-search", "Properties Search",
        "Search for existing properties",
        "/services/apexrest/property", "GET", "Search",
        alias_endpoint="/services/apexrest/v2/property/{member_id}/{branch_id}/{api_key}/",
        alias_auth_in_url=True,
    ),
    # ── Documents ────────────────────────────────────────────────────────
    ApiEndpoint(
        "dpc-certificate", "Deposit Protection Certificate",
        "Get a link to download the DPC PDF file",
        "/services/apexrest/dpc/{DAN}", "GET", "Documents",
        path_param="DAN", path_param_placeholder="EWC00005391",
        alias_endpoint="/services/apexrest/v2/dpc/{member_id}/{branch_id}/{api_key}/{DAN}",
        alias_auth_in_url=True,
    ),
    # ── Repayment ────────────────────────────────────────────────────────
    ApiEndpoint(
        "repayment-request", "Repayment Request",
        "Submit a repayment request against a deposit",
        "/services/apexrest/raiserepaymentrequest/", "POST", "Repayment",
        alias_endpoint="/services/apexrest/v2/RaiseRepaymentRequest",
    ),
    ApiEndpoint(
        "repayment-response", "Respond to Repayment Request",
        "Respond to a tenant repayment request",
        "/services/apexrest/raiserepaymentrequest/", "POST", "Repayment",
    ),
    # ── Member Info ──────────────────────────────────────────────────────
    ApiEndpoint(
        "branch-single", "Single Branch",
        "Get information for a specific branch",
        "/services/apexrest/branches/?name={branch_name}", "GET", "Member Info",
        path_param="branch_name", path_param_placeholder="EWC2",
    ),
    ApiEndpoint(
        "branches-list", "Branches List",
        "Get all branches associated with the member",
        "/services/apexrest/branches", "GET", "Member Info",
        alias_endpoint="/services/apexrest/v2/branches/{member_id}/{branch_id}/{api_key}/",
        alias_auth_in_url=True,
    ),
    # ── Dispute ──────────────────────────────────────────────────────────
    ApiEndpoint(
        "dispute-status", "Dispute Status",
        "Get the status of a dispute",
        "/services/apexrest/dispute/status/{DAN}", "GET", "Dispute",
        path_param="DAN", path_param_placeholder="EWC00004420",
        alias_endpoint="/services/apexrest/v2/dispute/status/{member_id}/{branch_id}/{api_key}/{DAN}",
        alias_auth_in_url=True,
    ),
    # ── Cart Management (NRLA) ───────────────────────────────────────────
    ApiEndpoint(
        "add-to-cart", "Add to Cart (NRLA)",
        "Add a deposit to the NRLA cart",
        "/services/apexrest/nrla/cart/add/{DAN}", "GET", "Cart Management",
        path_param="DAN", path_param_placeholder="EWI01261682",
    ),
    ApiEndpoint(
        ADD_ADDITIONAL_TENANT, "Add Additional Tenant",
        "Add an additional tenant to an existing deposit",
        "/services/apexrest/nrla/tenant/add/{DAN}", "POST", "Cart Management",
        path_param="DAN", path_param_placeholder="EWI01261682",
    ),
    ApiEndpoint(
        "remove-tenant", "Remove Tenant",
        "Remove a tenant from an existing deposit",
        "/services/apexrest/nrla/tenant/remove/{DAN}", "POST", "Cart Management",
        path_param="DAN", path_param_placeholder="EWI01261682",
    ),
    ApiEndpoint(
        "remove-from-cart", "Remove from Cart (NRLA)",
        "Remove a deposit from the NRLA cart",
        "/services/apexrest/nrla/cart/remove/{DAN}", "GET", "Cart Management",
        path_param="DAN", path_param_placeholder="EWI01261682",
    ),
    ApiEndpoint(
        "list-cart-contents", "List Cart Contents",
        "Get list of all deposits currently in the NRLA cart",
        "/services/apexrest/cart/list", "GET", "Cart Management",
    ),
]

API_CATEGORIES = sorted({e.category for e in API_ENDPOINTS})

_BY_ID = {e.id: e for e in API_ENDPOINTS}
_PLACEHOLDER = re.compile(r"\{[^}]+\}")


def get_endpoint(endpoint_id: str | None) -> ApiEndpoint | None:
    if not endpoint_id:
        return None
    return _BY_ID.get(endpoint_id)


def list_endpoints(category: str | None = None) -> list[ApiEndpoint]:
    if not category or category == "All":
        return list(API_ENDPOINTS)
    return [e for e in API_ENDPOINTS if e.category == category]


def _template_pattern(template: str) -> re.Pattern:
    """Compile a catalog template into a regex matching concrete paths.

    ``{param}`` matches one path segment; the trailing slash is optional.
    """
    path, _, query = template.partition("?")
    parts = _PLACEHOLDER.split(path.rstrip("/"))
    body = "[^/]+".join(re.escape(p) for p in parts)
    pattern = "^" + body + "/?"
    if query:
        key = query.split("=", 1)[0]
        pattern += r"\?(?:.*&)?" + re.escape(key) + "="
    else:
        pattern += r"(?:\?.*)?$"
    return re.compile(pattern, re.IGNORECASE)


_PATTERNS = [(e, _template_pattern(e.endpoint)) for e in API_ENDPOINTS]


def match_endpoint(path: str | None) -> ApiEndpoint | None:
    """Return the first catalog entry whose template matches ``path``.

    Paths that already carry the OAuth ``/auth/`` segment are matched
    against the plain catalog template.
    """
    if not path:
        return None
    normalised = path.replace("/services/apexrest/auth/", "/services/apexrest/", 1)
    for endpoint, pattern in _PATTERNS:
        if pattern.match(normalised):
            return endpoint
    return None
