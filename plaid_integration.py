import json
import logging
from typing import Dict, Optional

from plaid import ApiClient, ApiException, Configuration
from plaid.api import plaid_api
from plaid.model.country_code import CountryCode
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_sync_request import TransactionsSyncRequest

import config
from errors import UpstreamApiError

logger = logging.getLogger(__name__)


def get_plaid_client() -> plaid_api.PlaidApi:
    creds = config.get_plaid_credentials()
    cfg = Configuration(
        host=config.PLAID_HOSTS.get(creds["env"], config.PLAID_HOSTS["sandbox"]),
        api_key={
            "clientId": creds["client_id"],
            "secret": creds["secret"],
            "plaidVersion": "2020-09-14",
        },
    )
    return plaid_api.PlaidApi(ApiClient(cfg))


def _upstream_error(action: str, e: ApiException) -> UpstreamApiError:
    """Pull error_code / error_message out of Plaid's JSON error body when there is one."""
    code, message = None, str(e.reason or e)
    try:
        body = json.loads(e.body) if e.body else {}
    except (TypeError, ValueError):
        body = {}
    if isinstance(body, dict):
        code = body.get("error_code") or None
        message = body.get("error_message") or message
    return UpstreamApiError(f"{action}: {message}", plaid_code=code)


# ---- Transactions feed ----
class PlaidFeed:
    """
    The upstream side of reconciliation: one call = one page of
    {added, modified, removed, accounts, has_more, next_cursor}.
    """

    def __init__(self, client: Optional[plaid_api.PlaidApi] = None):
        self._client = client

    @property
    def client(self) -> plaid_api.PlaidApi:
        if self._client is None:
            self._client = get_plaid_client()
        return self._client

    def transactions_sync(self, access_token: str, cursor: str = "") -> Dict:
        kwargs = {"access_token": access_token}
        if cursor:
            kwargs["cursor"] = cursor
        try:
            resp = self.client.transactions_sync(TransactionsSyncRequest(**kwargs))
        except ApiException as e:
            raise _upstream_error("Transactions sync failed", e) from e
        return resp.to_dict()


# ---- Link flow ----
def create_link_token(user_id: str = "cashflow-cli", client: Optional[plaid_api.PlaidApi] = None) -> str:
    client = client or get_plaid_client()
    req = LinkTokenCreateRequest(
        user=LinkTokenCreateRequestUser(client_user_id=user_id),
        client_name="cashflow",
        products=[Products("transactions")],
        country_codes=[CountryCode("US")],
        language="en",
    )
    try:
        resp = client.link_token_create(req)
    except ApiException as e:
        raise _upstream_error("Failed to create link token", e) from e
    return resp.to_dict()["link_token"]


def exchange_public_token(
    public_token: str,
    institution_name: Optional[str] = None,
    client: Optional[plaid_api.PlaidApi] = None,
) -> Dict:
    """Swap a Link public token for an access token and remember the item (encrypted)."""
    client = client or get_plaid_client()
    try:
        ex = client.item_public_token_exchange(
            ItemPublicTokenExchangeRequest(public_token=public_token)
        ).to_dict()
    except ApiException as e:
        raise _upstream_error("Failed to exchange public token", e) from e
    config.add_item(ex["item_id"], ex["access_token"], institution_name)
    logger.info("Linked item %s (%s)", ex["item_id"], institution_name or "unknown institution")
    return {"item_id": ex["item_id"]}
