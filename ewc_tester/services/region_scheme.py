"""
Region & scheme mapping for EWC API authentication.

Credentials store a user-friendly region scheme ("EW - Custodial"); the EWC
API expects the long-form prefix at the start of AccessToken / auth_code.
"""

import logging

logger = logging.getLogger(__name__)

REGION_SCHEME_PREFIXES = {
    "EW - Custodial": "England & Wales Custodial-Custodial",
    "EW - Insured": "England & Wales Insured-Insured",
    "NI - Custodial": "Northern Ireland-Custodial",
    "NI - Insured": "Northern Ireland-Insured",
    "SDS - Custodial": "Safe Deposits Scotland-Custodial",
}

REGION_SCHEMES = list(REGION_SCHEME_PREFIXES)
DEFAULT_REGION_SCHEME = "EW - Custodial"


def get_region_scheme_prefix(region_scheme: str) -> str:
    """Return the token prefix for ``region_scheme``, defaulting to EW - Custodial."""
    prefix = REGION_SCHEME_PREFIXES.get(region_scheme)
    if prefix is None:
        logger.warning("Unknown region scheme %r, defaulting to %s", region_scheme, DEFAULT_REGION_SCHEME)
        return REGION_SCHEME_PREFIXES[DEFAULT_REGION_SCHEME]
    return prefix


def build_api_key_token(region_scheme: str, member_id: str, branch_id: str, api_key: str) -> str:
    """AccessToken header: ``{prefix}-{memberId}-{branchId}-{apiKey}``."""
    return f"{get_region_scheme_prefix(region_scheme)}-{member_id}-{branch_id}-{api_key}"


def build_oauth2_auth_code(region_scheme: str, client_id: str, client_secret: str, member_id: str) -> str:
    """auth_code header: ``{prefix}-{clientId}-{clientSecret}-{memberId}``."""
    return f"{get_region_scheme_prefix(region_scheme)}-{client_id}-{client_secret}-{member_id}"
