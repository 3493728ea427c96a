from fastapi import APIRouter, HTTPException, Query, Request

from storefront.schemas.checkout import RegionalPriceRead, RegionRead, RegionTableRead
from storefront.services.regional_pricing import (
    REGIONS,
    RegionInfo,
    RequestOrigin,
    regional_pricing,
)

router = APIRouter(prefix="/regions", tags=["regions"])


def _price_read(info: RegionInfo, country: str | None = None) -> RegionalPriceRead:
    return RegionalPriceRead(
        region=info.region,
        country=country,
        currency=info.currency,
        symbol=info.symbol,
        amount=info.course_price,
        course_price=info.course_price,
    )


@router.get("/detect", response_model=RegionRead)
def detect_region(
    request: Request,
    region: str | None = Query(default=None, min_length=2, max_length=2),
):
    resolved = regional_pricing.resolve(RequestOrigin.from_request(request, region))
    return RegionRead(
        region=resolved.info.region,
        country=resolved.country,
        currency=resolved.info.currency,
        symbol=resolved.info.symbol,
    )


@router.get("", response_model=RegionTableRead)
def list_regions():
    return RegionTableRead(
        regions={code: _price_read(info) for code, info in REGIONS.items()},
        default_region=regional_pricing.default.region,
    )


@router.get("/{region}", response_model=RegionalPriceRead)
def get_region(region: str):
    info = REGIONS.get(region.upper())
    if info is None:
        raise HTTPException(status_code=404, detail="Region not found")
    return _price_read(info)
