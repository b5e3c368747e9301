"""
Shopify service - Admin GraphQL API
Ref: https://shopify.dev/docs/api/admin-graphql/latest/queries/orders
Token: https://shopify.dev/docs/apps/build/authentication-authorization/access-tokens/client-credentials-grant
"""
import re
import time
from typing import Any, Optional

import httpx
from loguru import logger

from app.core.config import Settings, get_settings
from app.core.errors import UpstreamError
from app.core.retry import RetryPolicy, retry_async
from app.schemas.records import (
    Address,
    CustomerRecord,
    CustomerRef,
    LineItem,
    OrderRecord,
    ProductRecord,
    Variant,
)
from app.services.meta_ads import is_retryable_error
from app.sync_utils import format_money, now_iso

# access_token cache: (token, expires_at), refreshed 5 minutes early
_TOKEN_CACHE: Optional[tuple[str, float]] = None
_TOKEN_BUFFER_SECONDS = 300

SHOPIFY_SOURCE = "shopify_api"
PAGE_SIZE = 100

MONEY = "shopMoney { amount currencyCode }"

ADDRESS_FIELDS = """
    name company address1 address2 city province zip country phone
"""

ORDERS_QUERY = f"""
query GetOrders($first: Int!, $after: String, $query: String) {{
  orders(first: $first, after: $after, query: $query, sortKey: CREATED_AT) {{
    edges {{
      node {{
        id
        name
        email
        createdAt
        updatedAt
        processedAt
        cancelledAt
        note
        tags
        displayFinancialStatus
        displayFulfillmentStatus
        discountCodes
        customer {{ id displayName email }}
        totalPriceSet {{ {MONEY} }}
        subtotalPriceSet {{ {MONEY} }}
        totalTaxSet {{ {MONEY} }}
        shippingAddress {{ {ADDRESS_FIELDS} }}
        billingAddress {{ {ADDRESS_FIELDS} }}
        lineItems(first: 100) {{
          edges {{
            node {{
              id
              name
              quantity
              sku
              requiresShipping
              product {{ id }}
              variant {{ id }}
              originalUnitPriceSet {{ {MONEY} }}
            }}
          }}
        }}
      }}
    }}
    pageInfo {{ hasNextPage endCursor }}
  }}
}}
"""

PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    edges {
      node {
        id
        title
        handle
        descriptionHtml
        productType
        vendor
        status
        tags
        createdAt
        updatedAt
        options { name values }
        images(first: 20) { edges { node { id url altText } } }
        variants(first: 100) {
          edges { node { id title price sku inventoryQuantity } }
        }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

CUSTOMERS_QUERY = f"""
query GetCustomers($first: Int!, $after: String, $query: String) {{
  customers(first: $first, after: $after, query: $query) {{
    edges {{
      node {{
        id
        email
        firstName
        lastName
        phone
        numberOfOrders
        amountSpent {{ amount currencyCode }}
        note
        tags
        taxExempt
        state
        createdAt
        updatedAt
        emailMarketingConsent {{ marketingState }}
        addresses {{ {ADDRESS_FIELDS} }}
        defaultAddress {{ address1 }}
      }}
    }}
    pageInfo {{ hasNextPage endCursor }}
  }}
}}
"""

QUERIES = {
    "orders": ORDERS_QUERY,
    "products": PRODUCTS_QUERY,
    "customers": CUSTOMERS_QUERY,
}


def parse_gid(gid: Optional[str]) -> Optional[str]:
    """gid://shopify/Order/126216516 -> '126216516'"""
    if not gid:
        return None
    match = re.search(r"/(\d+)$", gid)
    return match.group(1) if match else gid


def _money(node: Optional[dict], key: str) -> str:
    money = ((node or {}).get(key) or {}).get("shopMoney") or {}
    return format_money(money.get("amount"))


def _address(data: Optional[dict]) -> Optional[Address]:
    if not data:
        return None
    return Address(**{k: data.get(k) for k in Address.model_fields if k in data})


def _edges(connection: Optional[dict]) -> list[dict]:
    return [e["node"] for e in (connection or {}).get("edges") or [] if e.get("node")]


def node_to_order(node: dict[str, Any], default_currency: str = "INR") -> OrderRecord:
    order_id = parse_gid(node.get("id"))
    total_money = ((node.get("totalPriceSet") or {}).get("shopMoney")) or {}
    customer = node.get("customer")
    created_at = node.get("createdAt") or now_iso()
    line_items = []
    for li in _edges(node.get("lineItems")):
        line_items.append(LineItem(
            id=parse_gid(li.get("id")) or "",
            product_id=parse_gid((li.get("product") or {}).get("id")),
            variant_id=parse_gid((li.get("variant") or {}).get("id")),
            title=li.get("name") or "Unknown Product",
            quantity=li.get("quantity") or 1,
            price=_money(li, "originalUnitPriceSet"),
            sku=li.get("sku") or None,
            requires_shipping=bool(li.get("requiresShipping")),
        ))
    return OrderRecord(
        id=order_id,
        name=node.get("name"),
        email=node.get("email"),
        customer=CustomerRef(
            id=parse_gid(customer.get("id")),
            name=customer.get("displayName"),
            email=customer.get("email"),
        ) if customer else None,
        status=(node.get("displayFinancialStatus") or "unknown").lower(),
        fulfillment_status=(node.get("displayFulfillmentStatus") or "unfulfilled").lower(),
        currency=total_money.get("currencyCode") or default_currency,
        total=_money(node, "totalPriceSet"),
        subtotal=_money(node, "subtotalPriceSet"),
        tax=_money(node, "totalTaxSet"),
        created_at=created_at,
        updated_at=node.get("updatedAt") or created_at,
        date=created_at[:10],
        line_items=line_items,
        shipping_address=_address(node.get("shippingAddress")),
        billing_address=_address(node.get("billingAddress")),
        tags=node.get("tags") or [],
        discount_codes=[{"code": code} for code in node.get("discountCodes") or []],
        note=node.get("note"),
        cancelled_at=node.get("cancelledAt"),
        processed_at=node.get("processedAt"),
        synced_at=now_iso(),
        import_source=SHOPIFY_SOURCE,
    )


def node_to_product(node: dict[str, Any]) -> ProductRecord:
    return ProductRecord(
        id=parse_gid(node.get("id")),
        title=node.get("title") or "Unnamed Product",
        handle=node.get("handle"),
        description=node.get("descriptionHtml") or "",
        type=node.get("productType") or "",
        vendor=node.get("vendor"),
        status=(node.get("status") or "active").lower(),
        tags=node.get("tags") or [],
        variants=[
            Variant(
                id=parse_gid(v.get("id")),
                title=v.get("title"),
                price=format_money(v.get("price")),
                sku=v.get("sku") or "",
                inventory=v.get("inventoryQuantity") or 0,
            )
            for v in _edges(node.get("variants"))
        ],
        options=node.get("options") or [],
        images=[
            {"id": parse_gid(i.get("id")), "src": i.get("url"), "alt": i.get("altText") or ""}
            for i in _edges(node.get("images"))
        ],
        created_at=node.get("createdAt"),
        updated_at=node.get("updatedAt"),
        synced_at=now_iso(),
        import_source=SHOPIFY_SOURCE,
    )


def node_to_customer(node: dict[str, Any], default_currency: str = "INR") -> CustomerRecord:
    spent = node.get("amountSpent") or {}
    default_line = (node.get("defaultAddress") or {}).get("address1")
    addresses = []
    for data in node.get("addresses") or []:
        address = _address(data)
        if address:
            address.default = bool(default_line) and data.get("address1") == default_line
            addresses.append(address)
    consent = (node.get("emailMarketingConsent") or {}).get("marketingState")
    return CustomerRecord(
        id=parse_gid(node.get("id")),
        email=node.get("email"),
        first_name=node.get("firstName"),
        last_name=node.get("lastName"),
        phone=node.get("phone"),
        orders_count=int(node.get("numberOfOrders") or 0),
        total_spent=format_money(spent.get("amount")),
        currency=spent.get("currencyCode") or default_currency,
        addresses=addresses,
        tags=node.get("tags") or [],
        note=node.get("note"),
        tax_exempt=bool(node.get("taxExempt")),
        accepts_marketing=consent == "SUBSCRIBED",
        state=(node.get("state") or "enabled").lower(),
        created_at=node.get("createdAt"),
        updated_at=node.get("updatedAt"),
        synced_at=now_iso(),
        import_source=SHOPIFY_SOURCE,
    )


class ShopifyThrottledError(UpstreamError):
    """GraphQL cost limit hit; the request can be retried after a pause."""


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ShopifyThrottledError) or is_retryable_error(error)


class ShopifyService:
    """Shopify Admin GraphQL client: pages through orders / products / customers"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or get_settings()
        self.graphql_url = self.settings.shopify_graphql_url
        self._transport = transport
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=30.0)
        if not self.settings.use_client_credentials() and not self.settings.SHOPIFY_ACCESS_TOKEN:
            raise ValueError(
                "Configure SHOPIFY_CLIENT_ID + SHOPIFY_CLIENT_SECRET (preferred) "
                "or SHOPIFY_ACCESS_TOKEN in .env"
            )

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        """
        Client credentials token fetched and cached when configured, otherwise the static token from .env.
        """
        if self.settings.use_client_credentials():
            global _TOKEN_CACHE
            now = time.time()
            if _TOKEN_CACHE and _TOKEN_CACHE[1] > now:
                return _TOKEN_CACHE[0]
            logger.info("Fetching Shopify access_token with client credentials")
            # form encoded, as the token endpoint requires
            response = await client.post(
                self.settings.shopify_oauth_token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.settings.SHOPIFY_CLIENT_ID,
                    "client_secret": self.settings.SHOPIFY_CLIENT_SECRET,
                },
            )
            response.raise_for_status()
            body = response.json()
            token = body.get("access_token")
            if not token:
                raise UpstreamError(f"no access_token in Shopify response: {body}")
            expires_in = int(body.get("expires_in", 86399))
            _TOKEN_CACHE = (token, now + expires_in - _TOKEN_BUFFER_SECONDS)
            logger.info(f"access_token valid for about {expires_in}s")
            return token
        return self.settings.SHOPIFY_ACCESS_TOKEN

    async def _graphql_request(self, client: httpx.AsyncClient, query: str, variables: dict) -> dict:
        """POST https://{store}.myshopify.com/admin/api/{version}/graphql.json"""
        access_token = await self._get_access_token(client)
        headers = {"X-Shopify-Access-Token": access_token, "Content-Type": "application/json"}

        async def call() -> dict:
            response = await client.post(
                self.graphql_url, headers=headers, json={"query": query, "variables": variables}
            )
            response.raise_for_status()
            data = response.json()
            errors = data.get("errors")
            if errors:
                if any((e.get("extensions") or {}).get("code") == "THROTTLED" for e in errors):
                    raise ShopifyThrottledError("Shopify GraphQL throttled")
                logger.error(f"GraphQL errors: {errors}")
                raise UpstreamError(f"Shopify GraphQL errors: {errors}")
            return data.get("data") or {}

        return await retry_async(call, self.retry_policy, _is_retryable, label="Shopify GraphQL")

    async def fetch_nodes(
        self, resource: str, query_filter: Optional[str] = None, limit: Optional[int] = None
    ) -> list[dict[str, Any]]:
        """Follow pageInfo.endCursor until every node (or `limit` nodes) is fetched."""
        if resource not in QUERIES:
            raise ValueError(f"unknown resource: {resource}")
        nodes: list[dict[str, Any]] = []
        variables: dict[str, Any] = {"first": PAGE_SIZE}
        if query_filter:
            variables["query"] = query_filter

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                while True:
                    data = await self._graphql_request(client, QUERIES[resource], variables)
                    connection = data.get(resource) or {}
                    nodes.extend(_edges(connection))
                    logger.info(f"Shopify {resource}: {len(nodes)} fetched")
                    page_info = connection.get("pageInfo") or {}
                    if (limit and len(nodes) >= limit) or not page_info.get("hasNextPage"):
                        break
                    variables["after"] = page_info.get("endCursor")
            except httpx.HTTPStatusError as e:
                logger.error(f"Shopify GraphQL request failed: {e.response.status_code} - {e.response.text}")
                raise UpstreamError(f"Shopify request failed: {e.response.status_code}") from e
            except httpx.HTTPError as e:
                logger.exception(f"Shopify GraphQL request error: {e}")
                raise UpstreamError(f"Shopify request failed: {e}") from e
        return nodes[:limit] if limit else nodes

    async def fetch_orders(
        self,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[OrderRecord]:
        """All orders regardless of status, optionally bounded by creation time."""
        filters = ["status:any"]
        if created_at_min:
            filters.append(f"created_at:>={created_at_min}")
        if created_at_max:
            filters.append(f"created_at:<={created_at_max}")
        nodes = await self.fetch_nodes("orders", " ".join(filters), limit)
        return [node_to_order(n, self.settings.DEFAULT_CURRENCY) for n in nodes]

    async def fetch_products(self, limit: Optional[int] = None) -> list[ProductRecord]:
        return [node_to_product(n) for n in await self.fetch_nodes("products", limit=limit)]

    async def fetch_customers(self, limit: Optional[int] = None) -> list[CustomerRecord]:
        nodes = await self.fetch_nodes("customers", limit=limit)
        return [node_to_customer(n, self.settings.DEFAULT_CURRENCY) for n in nodes]

    async def fetch(self, resource: str, limit: Optional[int] = None) -> list[Any]:
        if resource == "orders":
            return await self.fetch_orders(limit=limit)
        if resource == "products":
            return await self.fetch_products(limit=limit)
        if resource == "customers":
            return await self.fetch_customers(limit=limit)
        raise ValueError(f"unknown resource: {resource}")
