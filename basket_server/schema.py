"""GraphQL schema (Strawberry) over `ShopService`.

Identity comes from two places:
- HTTP queries and mutations: the `Authorization` request header.
- WebSocket subscriptions: the `Authorization` key of the `connection_init`
  payload. It is decoded once and cached in the connection context, so every
  subscription on that socket shares the identity fixed at connect time.

Service errors become GraphQL errors on the failing field with
`extensions.code` set (`UNAUTHENTICATED`, `NOT_FOUND`, `BAD_USER_INPUT`).
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import strawberry
from fastapi import WebSocket
from graphql import GraphQLError
from pydantic import ValidationError
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from .errors import ShopError
from .identity import UserIdentity, extract_identity
from .models import Cart, Product, ProductInput, ProductsPage, ProductUpdate
from .service import ShopService

# ---------------------------
# GraphQL types
# ---------------------------


@strawberry.type(name="Rating")
class RatingType:
    rate: Optional[float]
    count: Optional[int]


@strawberry.type(name="Product")
class ProductType:
    id: strawberry.ID
    title: str
    price: float
    description: str
    category: str
    image: str
    rating: RatingType


@strawberry.type(name="CartItem")
class CartItemType:
    product_id: strawberry.ID
    quantity: int
    product: Optional[ProductType]


@strawberry.type(name="Cart")
class CartType:
    items: List[CartItemType]
    total: float


@strawberry.type(name="ProductsPage")
class ProductsPageType:
    items: List[ProductType]
    total: int
    has_more: bool


@strawberry.input(name="ProductInput")
class ProductInputType:
    title: str
    price: float
    description: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    rate: Optional[float] = None
    count: Optional[int] = None


@strawberry.input(name="UpdateProductInput")
class UpdateProductInputType:
    title: Optional[str] = strawberry.UNSET
    price: Optional[float] = strawberry.UNSET
    description: Optional[str] = strawberry.UNSET
    category: Optional[str] = strawberry.UNSET
    image: Optional[str] = strawberry.UNSET
    rate: Optional[float] = strawberry.UNSET
    count: Optional[int] = strawberry.UNSET


# ---------------------------
# Mappers (domain -> GraphQL)
# ---------------------------


def _money(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def to_product_type(p: Product) -> ProductType:
    return ProductType(
        id=strawberry.ID(p.id),
        title=p.title,
        price=float(p.price),
        description=p.description,
        category=p.category,
        image=p.image,
        rating=RatingType(
            rate=float(p.rating.rate) if p.rating.rate is not None else None,
            count=p.rating.count,
        ),
    )


def to_cart_type(cart: Cart) -> CartType:
    return CartType(
        items=[
            CartItemType(
                product_id=strawberry.ID(item.product_id),
                quantity=item.quantity,
                product=to_product_type(item.product) if item.product else None,
            )
            for item in cart.items
        ],
        total=float(cart.total),
    )


def to_page_type(page: ProductsPage) -> ProductsPageType:
    return ProductsPageType(
        items=[to_product_type(p) for p in page.items],
        total=page.total,
        has_more=page.has_more,
    )


# ---------------------------
# Context helpers
# ---------------------------


def _service(info: Info) -> ShopService:
    return info.context["service"]


def resolve_identity(info: Info) -> UserIdentity:
    """Identity of the caller, derived once per request or per socket."""
    context = info.context
    identity = context.get("identity")
    if identity is not None:
        return identity

    request = context.get("request")
    if isinstance(request, WebSocket):
        params = context.get("connection_params")
        header = params.get("Authorization") if isinstance(params, dict) else None
    else:
        header = request.headers.get("Authorization") if request is not None else None

    identity = extract_identity(header if isinstance(header, str) else None)
    context["identity"] = identity
    return identity


@contextmanager
def graphql_errors():
    """Re-raise service and validation errors as coded GraphQL errors."""
    try:
        yield
    except ShopError as e:
        raise GraphQLError(e.message, extensions={"code": e.code}) from e
    except ValidationError as e:
        raise GraphQLError(f"Invalid input: {e.errors()[0]['msg']}", extensions={"code": "BAD_USER_INPUT"}) from e


# ---------------------------
# GraphQL Root: Query
# ---------------------------


@strawberry.type
class Query:
    @strawberry.field
    def products(
        self,
        info: Info,
        category: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ProductsPageType:
        with graphql_errors():
            return to_page_type(_service(info).products(category=category, limit=limit, offset=offset))

    @strawberry.field
    def product(self, info: Info, id: strawberry.ID) -> Optional[ProductType]:
        p = _service(info).product(str(id))
        return to_product_type(p) if p else None

    @strawberry.field
    def categories(self, info: Info) -> List[str]:
        return _service(info).categories()

    @strawberry.field
    def cart(self, info: Info) -> CartType:
        with graphql_errors():
            return to_cart_type(_service(info).cart(resolve_identity(info)))


# ---------------------------
# GraphQL Root: Mutation
# ---------------------------


@strawberry.type
class Mutation:
    @strawberry.mutation
    def add_product(self, info: Info, input: ProductInputType) -> ProductType:
        with graphql_errors():
            data = ProductInput(
                title=input.title,
                price=_money(input.price),
                description=input.description,
                category=input.category,
                image=input.image,
                rate=_money(input.rate),
                count=input.count,
            )
            return to_product_type(_service(info).add_product(data))

    @strawberry.mutation
    def update_product(self, info: Info, id: strawberry.ID, input: UpdateProductInputType) -> ProductType:
        with graphql_errors():
            fields = {name: value for name, value in vars(input).items() if value is not strawberry.UNSET}
            for money_field in ("price", "rate"):
                if money_field in fields:
                    fields[money_field] = _money(fields[money_field])
            return to_product_type(_service(info).update_product(str(id), ProductUpdate(**fields)))

    @strawberry.mutation
    def remove_product(self, info: Info, id: strawberry.ID) -> ProductType:
        with graphql_errors():
            return to_product_type(_service(info).remove_product(str(id)))

    @strawberry.mutation
    def add_to_cart(self, info: Info, product_id: strawberry.ID, quantity: int = 1) -> CartType:
        with graphql_errors():
            cart = _service(info).add_to_cart(resolve_identity(info), str(product_id), quantity)
            return to_cart_type(cart)

    @strawberry.mutation
    def update_cart_item(self, info: Info, product_id: strawberry.ID, quantity: int) -> CartType:
        with graphql_errors():
            cart = _service(info).update_cart_item(resolve_identity(info), str(product_id), quantity)
            return to_cart_type(cart)

    @strawberry.mutation
    def remove_from_cart(self, info: Info, product_id: strawberry.ID) -> CartType:
        with graphql_errors():
            return to_cart_type(_service(info).remove_from_cart(resolve_identity(info), str(product_id)))

    @strawberry.mutation
    def clear_cart(self, info: Info) -> CartType:
        with graphql_errors():
            return to_cart_type(_service(info).clear_cart(resolve_identity(info)))


# ---------------------------
# GraphQL Root: Subscription
# ---------------------------


@strawberry.type
class Subscription:
    @strawberry.subscription
    async def product_added(self, info: Info) -> AsyncGenerator[ProductType, None]:
        async for product in _service(info).gateway.product_added():
            yield to_product_type(product)

    @strawberry.subscription
    async def product_updated(self, info: Info) -> AsyncGenerator[ProductType, None]:
        async for product in _service(info).gateway.product_updated():
            yield to_product_type(product)

    @strawberry.subscription
    async def cart_updated(self, info: Info) -> AsyncGenerator[CartType, None]:
        identity = resolve_identity(info)
        async for cart in _service(info).gateway.cart_updates(identity):
            yield to_cart_type(cart)


schema = strawberry.Schema(query=Query, mutation=Mutation, subscription=Subscription)


def build_graphql_router(service: ShopService) -> GraphQLRouter:
    """GraphQL router serving HTTP and WebSocket on the same path."""

    async def get_context() -> dict:
        return {"service": service}

    return GraphQLRouter(schema, context_getter=get_context)
