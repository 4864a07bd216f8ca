"""
Billingo SDK - High-level client grouped by resource.

This layer maps each operation to a single Billingo API v3 endpoint.
Built on top of the core APIClient; response bodies pass through unchanged.
"""

import builtins
from typing import Any

from billingo_cli.config import ClientConfiguration
from billingo_cli.core.client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, APIClient
from billingo_cli.core.types import PaginatedResponse

DEFAULT_PER_PAGE = 25

# Query parameters accepted by GET /documents besides page/per_page
DOCUMENT_FILTERS = (
    "block_id",
    "partner_id",
    "payment_method",
    "payment_status",
    "type",
    "start_date",
    "end_date",
    "start_number",
    "end_number",
    "start_year",
    "end_year",
)


class BillingoClient:
    """
    High-level Billingo API client.

    Example:
        client = BillingoClient(api_key="...")

        partners = client.partners.list(page=1, per_page=25)
        invoice = client.documents.create({"partner_id": 1, ...})
        pdf = client.documents.download(invoice["id"])

    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the Billingo client.

        Args:
            api_key: Billingo API key
            base_url: API base URL
            timeout: Request timeout in seconds

        """
        self._client = APIClient(api_key=api_key, base_url=base_url, timeout=timeout)

        # Sub-clients for different resources
        self.documents = DocumentOperations(self._client)
        self.partners = PartnerOperations(self._client)
        self.products = ProductOperations(self._client)
        self.bank_accounts = BankAccountOperations(self._client)
        self.document_blocks = DocumentBlockOperations(self._client)
        self.organization = OrganizationOperations(self._client)
        self.currencies = CurrencyOperations(self._client)
        self.utils = UtilityOperations(self._client)

    @classmethod
    def from_config(cls, config: ClientConfiguration, timeout: int = DEFAULT_TIMEOUT) -> "BillingoClient":
        """Create a client from resolved configuration."""
        return cls(api_key=config.api_key, base_url=config.base_url, timeout=timeout)


# =============================================================================
# Generic CRUD
# =============================================================================


class ListOperations:
    """Paginated listing of a collection endpoint."""

    path = ""

    def __init__(self, client: APIClient):
        self._client = client

    def _list_params(self, page: int, per_page: int, filters: dict[str, Any] | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "per_page": per_page}
        if filters:
            params.update(filters)
        return params

    def list_page(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> PaginatedResponse:
        """Fetch one page, keeping the pagination metadata."""
        body = self._client.get(self.path, self._list_params(page, per_page))
        return PaginatedResponse.from_dict(body, page=page, per_page=per_page)

    def list(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> builtins.list[Any]:
        """Fetch one page and return only its items."""
        return self.list_page(page, per_page).data


class ResourceOperations(ListOperations):
    """List/get/create/delete for a collection endpoint."""

    def _item_path(self, resource_id: Any) -> str:
        return f"{self.path}/{resource_id}"

    def get(self, resource_id: Any) -> Any:
        return self._client.get(self._item_path(resource_id))

    def create(self, data: Any) -> Any:
        return self._client.post(self.path, data)

    def delete(self, resource_id: Any) -> Any:
        return self._client.delete(self._item_path(resource_id))


class EditableResourceOperations(ResourceOperations):
    """Collection whose items can be replaced with PUT."""

    def update(self, resource_id: Any, data: Any) -> Any:
        return self._client.put(self._item_path(resource_id), data)


# =============================================================================
# Documents
# =============================================================================


class DocumentOperations(ResourceOperations):
    """Invoices, proformas, drafts and their actions."""

    path = "/documents"

    def list_page(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        **filters: Any,
    ) -> PaginatedResponse:
        """
        Fetch one page of documents.

        Args:
            page: Page number (1-based)
            per_page: Results per page
            **filters: Any of DOCUMENT_FILTERS; None values are ignored

        Returns:
            PaginatedResponse with documents and metadata

        """
        unknown = set(filters) - set(DOCUMENT_FILTERS)
        if unknown:
            raise TypeError(f"Unknown document filter(s): {', '.join(sorted(unknown))}")
        body = self._client.get(self.path, self._list_params(page, per_page, filters))
        return PaginatedResponse.from_dict(body, page=page, per_page=per_page)

    def list(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE, **filters: Any) -> builtins.list[Any]:
        return self.list_page(page, per_page, **filters).data

    def cancel(self, document_id: Any) -> Any:
        return self._client.post(f"{self._item_path(document_id)}/cancel")

    def download(self, document_id: Any) -> bytes:
        """Download the document PDF as raw bytes."""
        return self._client.download(f"{self._item_path(document_id)}/download")

    def send(
        self,
        document_id: Any,
        emails: builtins.list[str] | None = None,
        subject: str | None = None,
        message: str | None = None,
    ) -> Any:
        """Send the document by email (to the partner's addresses when emails is omitted)."""
        data: dict[str, Any] = {}
        if emails:
            data["emails"] = emails
        if subject:
            data["subject"] = subject
        if message:
            data["message"] = message
        return self._client.post(f"{self._item_path(document_id)}/send", data)

    def public_url(self, document_id: Any) -> Any:
        return self._client.get(f"{self._item_path(document_id)}/public-url")

    def payments(self, document_id: Any) -> Any:
        return self._client.get(f"{self._item_path(document_id)}/payments")

    def update_payments(self, document_id: Any, data: Any) -> Any:
        return self._client.put(f"{self._item_path(document_id)}/payments", data)

    def online_szamla(self, document_id: Any) -> Any:
        """Status of the document's NAV Online Számla submission."""
        return self._client.get(f"{self._item_path(document_id)}/online-szamla")


# =============================================================================
# Partners, Products, Bank Accounts
# =============================================================================


class PartnerOperations(EditableResourceOperations):
    """Customers and suppliers."""

    path = "/partners"


class ProductOperations(EditableResourceOperations):
    path = "/products"


class BankAccountOperations(EditableResourceOperations):
    path = "/bank-accounts"


# =============================================================================
# Read-only resources
# =============================================================================


class DocumentBlockOperations(ListOperations):
    """Document blocks (numbering pads)."""

    path = "/document-blocks"


class OrganizationOperations:
    def __init__(self, client: APIClient):
        self._client = client

    def get(self) -> Any:
        """Organization data of the API key's owner."""
        return self._client.get("/organization")


class CurrencyOperations:
    def __init__(self, client: APIClient):
        self._client = client

    def convert(self, from_currency: str, to_currency: str) -> Any:
        """Conversion rate between two currency codes (e.g. HUF -> EUR)."""
        return self._client.get("/currencies", {"from": from_currency.upper(), "to": to_currency.upper()})


class UtilityOperations:
    def __init__(self, client: APIClient):
        self._client = client

    def convert_legacy_id(self, legacy_id: Any) -> Any:
        """Translate a Billingo API v2 identifier into its v3 identifier."""
        return self._client.get(f"/utils/convert-legacy-id/{legacy_id}")
