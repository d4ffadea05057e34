"""HTTP client for the basket-server GraphQL endpoint.

Why is this its own module?
- Keeps the sync agent free of query strings and HTTP details.
- Gives one place that decides how errors look to callers.

Error policy:
- Catalog reads (`load_products`, `load_product`, `load_categories`) log and
  fall back to an empty value. A broken catalog call should not break a page.
- Cart calls raise: `httpx.HTTPError` for transport / status failures and
  `GraphQLRequestError` when the server answered with GraphQL errors.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import GRAPHQL_HTTP_URL, REQUEST_TIMEOUT
from .models import Cart, Product, ProductsPage

logger = logging.getLogger(__name__)

_PRODUCT_FIELDS = """
    id
    title
    price
    description
    category
    image
    rating {
      rate
      count
    }
"""

CART_FIELDS = """
    items {
      productId
      quantity
      product {
        id
        title
        price
        image
        category
      }
    }
    total
"""

PRODUCTS_QUERY = f"""
query GetProducts($limit: Int, $offset: Int, $category: String) {{
  products(limit: $limit, offset: $offset, category: $category) {{
    items {{ {_PRODUCT_FIELDS} }}
    total
    hasMore
  }}
}}
"""

PRODUCT_QUERY = f"""
query GetProduct($id: ID!) {{
  product(id: $id) {{ {_PRODUCT_FIELDS} }}
}}
"""

CATEGORIES_QUERY = "query GetCategories { categories }"

CART_QUERY = f"query GetCart {{ cart {{ {CART_FIELDS} }} }}"

ADD_TO_CART_MUTATION = f"""
mutation AddToCart($productId: ID!, $quantity: Int!) {{
  addToCart(productId: $productId, quantity: $quantity) {{ {CART_FIELDS} }}
}}
"""

UPDATE_CART_ITEM_MUTATION = f"""
mutation UpdateCartItem($productId: ID!, $quantity: Int!) {{
  updateCartItem(productId: $productId, quantity: $quantity) {{ {CART_FIELDS} }}
}}
"""

CLEAR_CART_MUTATION = f"mutation ClearCart {{ clearCart {{ {CART_FIELDS} }} }}"


class GraphQLRequestError(Exception):
    """The server answered, but with GraphQL errors."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    @property
    def code(self) -> str | None:
        """`extensions.code` of the first error, e.g. "UNAUTHENTICATED"."""
        if not self.errors:
            return None
        return (self.errors[0].get("extensions") or {}).get("code")


class ShopApiClient:
    """GraphQL-over-HTTP client.

    Args:
        url: GraphQL endpoint.
        token: Bearer token sent as `Authorization` when set.
        http_client: Optional shared `httpx.AsyncClient`. When omitted a
            client is created per call, which is simple and fine for a UI's
            request rate.
    """

    def __init__(
        self,
        url: str = GRAPHQL_HTTP_URL,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self._http = http_client

    def set_token(self, token: str | None) -> None:
        self.token = token or None

    async def request(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a query and return its `data`.

        Raises:
            httpx.HTTPError on connection failures, timeouts or non-2xx status.
            GraphQLRequestError when the response carries `errors`.
        """
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = {"query": query, "variables": variables or {}}

        if self._http is not None:
            resp = await self._http.post(self.url, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=body, headers=headers)
        resp.raise_for_status()

        result = resp.json()
        errors = result.get("errors")
        if errors:
            logger.warning("[API] GraphQL errors: %s", errors)
            raise GraphQLRequestError(errors[0].get("message") or "Unknown GraphQL error", errors)
        return result.get("data") or {}

    # --- catalog -------------------------------------------------------------

    async def load_products(self, limit: int = 3, offset: int = 0, category: str | None = None) -> ProductsPage:
        variables = {"limit": limit, "offset": offset, "category": category or None}
        try:
            data = await self.request(PRODUCTS_QUERY, variables)
        except (httpx.HTTPError, GraphQLRequestError) as e:
            logger.warning("[API] Could not load products: %s", e)
            return ProductsPage()
        return ProductsPage.model_validate(data["products"])

    async def load_product(self, product_id: str) -> Product | None:
        try:
            data = await self.request(PRODUCT_QUERY, {"id": product_id})
        except (httpx.HTTPError, GraphQLRequestError) as e:
            logger.warning("[API] Could not load product %s: %s", product_id, e)
            return None
        product = data.get("product")
        return Product.model_validate(product) if product else None

    async def load_categories(self) -> list[str]:
        try:
            data = await self.request(CATEGORIES_QUERY)
        except (httpx.HTTPError, GraphQLRequestError) as e:
            logger.warning("[API] Could not load categories: %s", e)
            return []
        return list(data["categories"])

    # --- cart ----------------------------------------------------------------

    async def load_cart(self) -> Cart:
        data = await self.request(CART_QUERY)
        return Cart.model_validate(data["cart"])

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> Cart:
        data = await self.request(ADD_TO_CART_MUTATION, {"productId": product_id, "quantity": quantity})
        return Cart.model_validate(data["addToCart"])

    async def update_cart_item(self, product_id: str, quantity: int) -> Cart:
        """Set an absolute quantity; 0 or less removes the line."""
        data = await self.request(UPDATE_CART_ITEM_MUTATION, {"productId": product_id, "quantity": quantity})
        return Cart.model_validate(data["updateCartItem"])

    async def clear_cart(self) -> Cart:
        data = await self.request(CLEAR_CART_MUTATION)
        return Cart.model_validate(data["clearCart"])
