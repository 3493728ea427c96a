from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.schemas.catalog import (
    ProductCreate,
    ProductPriceCreate,
    ProductPriceRead,
    ProductRead,
    ProductUpdate,
)
from storefront.schemas.common import ListResponse
from storefront.services import catalog as catalog_service
from storefront.services.response import list_response

router = APIRouter(tags=["catalog"])


# ── Products ─────────────────────────────────────────────


@router.post(
    "/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED
)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    return catalog_service.products.create(db, payload)


@router.get("/products/{product_id}", response_model=ProductRead)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return catalog_service.products.get(db, product_id)


@router.get("/products", response_model=ListResponse[ProductRead])
def list_products(
    is_active: bool | None = None,
    kind: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = catalog_service.products.list(
        db, is_active, kind, order_by, order_dir, limit, offset
    )
    return list_response(items, limit, offset, total=total)


@router.patch("/products/{product_id}", response_model=ProductRead)
def update_product(
    product_id: str, payload: ProductUpdate, db: Session = Depends(get_db)
):
    return catalog_service.products.update(db, product_id, payload)


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(product_id: str, db: Session = Depends(get_db)):
    catalog_service.products.delete(db, product_id)


# ── Prices ───────────────────────────────────────────────


@router.put("/products/{product_id}/prices", response_model=ProductPriceRead)
def set_product_price(
    product_id: str, payload: ProductPriceCreate, db: Session = Depends(get_db)
):
    return catalog_service.product_prices.upsert(db, product_id, payload)


@router.delete(
    "/products/{product_id}/prices/{currency}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_product_price(
    product_id: str, currency: str, db: Session = Depends(get_db)
):
    catalog_service.product_prices.delete(db, product_id, currency)
