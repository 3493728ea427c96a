import logging

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.billing import BillingPeriod, Product, ProductKind, ProductPrice
from storefront.schemas.catalog import ProductCreate, ProductPriceCreate, ProductUpdate
from storefront.services.common import apply_ordering, coerce_uuid
from storefront.services.regional_pricing import SUPPORTED_CURRENCIES

logger = logging.getLogger(__name__)


def _check_currency(currency: str) -> None:
    if currency not in SUPPORTED_CURRENCIES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported currency {currency}. "
            f"Allowed: {', '.join(sorted(SUPPORTED_CURRENCIES))}",
        )


class Products:
    @staticmethod
    def create(db: Session, payload: ProductCreate) -> Product:
        for price in payload.prices:
            _check_currency(price.currency)
        data = payload.model_dump(exclude={"prices"})
        data["kind"] = ProductKind(data["kind"])
        if data["billing_period"]:
            data["billing_period"] = BillingPeriod(data["billing_period"])
        item = Product(**data)
        item.prices = [
            ProductPrice(currency=price.currency, unit_amount=price.unit_amount)
            for price in payload.prices
        ]
        db.add(item)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise HTTPException(
                status_code=409, detail="A product with this slug already exists"
            ) from exc
        db.refresh(item)
        logger.info("Created Product: %s", item.id, extra={"product_id": str(item.id)})
        return item

    @staticmethod
    def get(db: Session, item_id: str) -> Product:
        item = db.get(Product, coerce_uuid(item_id))
        if not item:
            raise HTTPException(status_code=404, detail="Product not found")
        return item

    @staticmethod
    def get_active(db: Session, item_id: str) -> Product:
        item = db.get(Product, coerce_uuid(item_id))
        if not item or not item.is_active:
            raise HTTPException(status_code=404, detail="Product not found")
        return item

    @staticmethod
    def list(
        db: Session,
        is_active: bool | None,
        kind: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> tuple[list[Product], int]:
        query = db.query(Product)
        if is_active is not None:
            query = query.filter(Product.is_active == is_active)
        if kind:
            try:
                query = query.filter(Product.kind == ProductKind(kind))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail="Invalid kind") from exc
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"created_at": Product.created_at, "name": Product.name},
        )
        items = list(query.limit(limit).offset(offset).all())
        return items, total

    @staticmethod
    def update(db: Session, item_id: str, payload: ProductUpdate) -> Product:
        item = Products.get(db, item_id)
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(item, key, value)
        db.commit()
        db.refresh(item)
        logger.info("Updated %s: %s", Product.__name__, item.id)
        return item

    @staticmethod
    def delete(db: Session, item_id: str) -> None:
        item = Products.get(db, item_id)
        item.is_active = False
        db.commit()
        logger.info("Soft-deleted %s: %s", Product.__name__, item.id)


class ProductPrices:
    @staticmethod
    def upsert(db: Session, product_id: str, payload: ProductPriceCreate) -> ProductPrice:
        """Set the product's price in one currency, replacing any existing one."""
        _check_currency(payload.currency)
        product = Products.get(db, product_id)
        price = product.price_for(payload.currency)
        if price is None:
            price = ProductPrice(currency=payload.currency, unit_amount=payload.unit_amount)
            product.prices.append(price)
        else:
            price.unit_amount = payload.unit_amount
        db.commit()
        db.refresh(price)
        logger.info(
            "Set %s price for %s: %s",
            payload.currency,
            product.id,
            payload.unit_amount,
            extra={"product_id": str(product.id), "currency": payload.currency},
        )
        return price

    @staticmethod
    def delete(db: Session, product_id: str, currency: str) -> None:
        product = Products.get(db, product_id)
        price = product.price_for(currency)
        if price is None:
            raise HTTPException(status_code=404, detail="Price not found")
        product.prices.remove(price)
        db.commit()
        logger.info("Removed %s price for %s", currency.upper(), product.id)


products = Products()
product_prices = ProductPrices()
