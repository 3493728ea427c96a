"""Seed the default course catalog with its regional prices."""

import argparse

from dotenv import load_dotenv
from sqlalchemy import select

from storefront.db import SessionLocal
from storefront.models.billing import Product, ProductKind, ProductPrice
from storefront.services.regional_pricing import REGIONS

DEFAULT_PRODUCTS = [
    {
        "slug": "big-baby-sleep-program",
        "name": "Big Baby Sleep Program",
        "description": "Sleep program for toddlers aged 4 to 24 months",
        "kind": ProductKind.course,
    },
    {
        "slug": "little-baby-sleep-program",
        "name": "Little Baby Sleep Program",
        "description": "Sleep program for newborns up to 4 months",
        "kind": ProductKind.course,
    },
]


def seed_catalog(db) -> int:
    created = 0
    for spec in DEFAULT_PRODUCTS:
        product = db.scalar(select(Product).where(Product.slug == spec["slug"]))
        if product is None:
            product = Product(**spec)
            db.add(product)
            created += 1
        for info in REGIONS.values():
            if product.price_for(info.currency) is None:
                product.prices.append(
                    ProductPrice(currency=info.currency, unit_amount=info.course_price)
                )
    db.commit()
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.parse_args()
    load_dotenv()
    db = SessionLocal()
    try:
        created = seed_catalog(db)
        print(f"Catalog seed complete ({created} new products).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
