"""Regional pricing: map a request's origin to a region, currency and base price.

Prices are a static per-currency table on each product. There is no FX
conversion; a product without a price in the resolved currency is sold in the
default region's currency instead.
"""
from __future__ import annotations

import ipaddress
import logging
from collections.abc import Callable
from dataclasses import dataclass

from starlette.requests import Request

from storefront.config import settings
from storefront.models.billing import Product

logger = logging.getLogger(__name__)

# CDN / edge headers carrying the caller's ISO country code
COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country", "x-country-code")


@dataclass(frozen=True)
class RegionInfo:
    region: str
    currency: str
    symbol: str
    countries: frozenset[str]
    course_price: int  # default course price, minor units


REGIONS: dict[str, RegionInfo] = {
    "AU": RegionInfo(
        "AU", "AUD", "$", frozenset({"AU", "FJ", "PG", "SB", "VU", "NC", "PF"}), 12000
    ),
    "NZ": RegionInfo("NZ", "NZD", "$", frozenset({"NZ"}), 12000),
    "US": RegionInfo("US", "USD", "$", frozenset({"US", "MX"}), 12000),
    "CA": RegionInfo("CA", "CAD", "$", frozenset({"CA"}), 12000),
    "GB": RegionInfo("GB", "GBP", "£", frozenset({"GB", "UK"}), 6000),
    "EU": RegionInfo(
        "EU",
        "EUR",
        "€",
        frozenset(
            {
                "AT", "BE", "BG", "CH", "CY", "CZ", "DE", "DK", "EE", "ES",
                "FI", "FR", "GR", "HR", "HU", "IE", "IT", "LT", "LU", "LV",
                "MT", "NL", "NO", "PL", "PT", "RO", "SE", "SI", "SK",
            }
        ),
        6000,
    ),
}

SUPPORTED_CURRENCIES = frozenset(info.currency for info in REGIONS.values())

_COUNTRY_TO_REGION = {
    country: info.region for info in REGIONS.values() for country in info.countries
}


@dataclass(frozen=True)
class RequestOrigin:
    """Where a checkout request came from, captured once per request."""

    ip: str | None = None
    country: str | None = None
    region_override: str | None = None

    @classmethod
    def from_request(
        cls, request: Request, region_override: str | None = None
    ) -> RequestOrigin:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip: str | None = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else None
        country = None
        for header in COUNTRY_HEADERS:
            value = request.headers.get(header)
            if value:
                country = value.strip().upper()
                break
        return cls(ip=ip, country=country, region_override=region_override)


@dataclass(frozen=True)
class ResolvedRegion:
    info: RegionInfo
    country: str | None
    detected: bool


@dataclass(frozen=True)
class RegionalPrice:
    region: str
    currency: str
    symbol: str
    base_price: int  # minor units


def is_local_address(ip: str | None) -> bool:
    if not ip:
        return True
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return True
    return address.is_private or address.is_loopback or address.is_link_local


class RegionalPricingResolver:
    def __init__(
        self,
        default_region: str | None = None,
        country_lookup: Callable[[str], str | None] | None = None,
    ) -> None:
        default_region = (default_region or settings.default_region).upper()
        if default_region not in REGIONS:
            logger.warning("Unknown default region %s, using AU", default_region)
            default_region = "AU"
        self.default = REGIONS[default_region]
        self._country_lookup = country_lookup

    def country_for(self, origin: RequestOrigin) -> str | None:
        """Best-effort country detection. Never raises."""
        if origin.country and origin.country not in {"XX", "T1"}:
            return origin.country
        if is_local_address(origin.ip) or self._country_lookup is None:
            return None
        try:
            country = self._country_lookup(origin.ip)  # type: ignore[arg-type]
        except Exception:
            logger.warning("Country lookup failed for %s", origin.ip, exc_info=True)
            return None
        return country.upper() if country else None

    def region_for_country(self, country: str | None) -> RegionInfo:
        if not country:
            return self.default
        region = _COUNTRY_TO_REGION.get(country.upper())
        return REGIONS[region] if region else self.default

    def resolve(self, origin: RequestOrigin) -> ResolvedRegion:
        if origin.region_override:
            override = REGIONS.get(origin.region_override.upper())
            if override:
                return ResolvedRegion(override, origin.country, detected=True)
        country = self.country_for(origin)
        region = _COUNTRY_TO_REGION.get(country) if country else None
        if region is None:
            logger.debug("Region fallback for country=%s ip=%s", country, origin.ip)
            return ResolvedRegion(self.default, country, detected=False)
        return ResolvedRegion(REGIONS[region], country, detected=True)

    def price_for(self, product: Product, origin: RequestOrigin) -> RegionalPrice:
        """Pick the product's base price for the caller's region.

        Raises ``LookupError`` when the product has neither a price in the
        regional currency nor in the default currency.
        """
        resolved = self.resolve(origin).info
        price = product.price_for(resolved.currency)
        if price is None:
            resolved = self.default
            price = product.price_for(resolved.currency)
        if price is None:
            raise LookupError(f"Product {product.id} has no price in {resolved.currency}")
        return RegionalPrice(
            region=resolved.region,
            currency=resolved.currency,
            symbol=resolved.symbol,
            base_price=price.unit_amount,
        )

    @staticmethod
    def regions() -> dict[str, RegionInfo]:
        return dict(REGIONS)


regional_pricing = RegionalPricingResolver()
