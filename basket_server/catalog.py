"""In-memory product catalog.

The product list is read once from a JSON file at startup. After that it only
changes through the catalog mutations (add / update / remove product), which
are applied here and announced on the event bus by the service layer.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

from .errors import InvalidArgument, ProductNotFound
from .models import Product, ProductInput, ProductsPage, ProductUpdate, Rating


def load_catalog(path: str | Path) -> "CatalogStore":
    """Read the product list from `path`.

    Floats are parsed straight into `Decimal` so prices like 22.3 stay exact.
    """
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw, parse_float=Decimal)
    return CatalogStore([Product.model_validate(item) for item in data])


class CatalogStore:
    def __init__(self, products: list[Product] | None = None) -> None:
        self._products: list[Product] = list(products or [])

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: object) -> bool:
        return self.get(str(product_id)) is not None

    def all(self) -> list[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Product | None:
        for product in self._products:
            if product.id == product_id:
                return product
        return None

    def categories(self) -> list[str]:
        """Distinct non-empty categories, in first-seen order."""
        seen: dict[str, None] = {}
        for product in self._products:
            if product.category:
                seen.setdefault(product.category, None)
        return list(seen)

    def page(
        self,
        category: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ProductsPage:
        """Return one page of products.

        `total` always counts every product matching the category filter.
        Slicing, and therefore `has_more`, only happens when `limit` is given;
        without a limit the offset is ignored and the whole filtered list is
        returned.
        """
        if limit is not None and limit < 0:
            raise InvalidArgument("limit must not be negative")
        if offset is not None and offset < 0:
            raise InvalidArgument("offset must not be negative")

        items = [p for p in self._products if p.category == category] if category else self.all()
        total = len(items)

        if limit is None:
            return ProductsPage(items=items, total=total, has_more=False)

        start = offset or 0
        return ProductsPage(
            items=items[start : start + limit],
            total=total,
            has_more=start + limit < total,
        )

    def _next_id(self) -> str:
        numeric = [int(p.id) for p in self._products if p.id.isdigit()]
        return str(max(numeric) + 1 if numeric else len(self._products) + 1)

    def add(self, data: ProductInput) -> Product:
        product = Product(
            id=self._next_id(),
            title=data.title,
            price=data.price,
            description=data.description or "",
            category=data.category or "",
            image=data.image or "",
            rating=Rating(rate=data.rate, count=data.count),
        )
        self._products.append(product)
        return product

    def update(self, product_id: str, changes: ProductUpdate) -> Product:
        """Apply the explicitly-set fields of `changes` to a product.

        Explicit nulls clear the optional text fields; they never clear
        `title` or `price`.
        """
        for index, current in enumerate(self._products):
            if current.id == product_id:
                break
        else:
            raise ProductNotFound(product_id)

        fields = changes.model_dump(exclude_unset=True)
        rating = current.rating.model_copy(
            update={k: fields.pop(k) for k in ("rate", "count") if k in fields}
        )
        for required in ("title", "price"):
            if fields.get(required) is None:
                fields.pop(required, None)
        for optional in ("description", "category", "image"):
            if optional in fields and fields[optional] is None:
                fields[optional] = ""

        updated = current.model_copy(update={**fields, "rating": rating})
        self._products[index] = updated
        return updated

    def remove(self, product_id: str) -> Product:
        """Drop a product. Cart lines pointing at it are left to dangle."""
        product = self.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        self._products.remove(product)
        return product
