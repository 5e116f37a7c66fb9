"""
Transform raw feed rows and submitted records into the canonical product shape
"""

from decimal import Decimal, InvalidOperation
from collections.abc import Mapping
from typing import Any, Iterator, Optional
from urllib.parse import urlparse
import re
import logging

from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.exceptions import NormalizationError, ValidationError
from ingestion.transformers.categorizer import fold, resolve_category
from models.base import Category, ProductCondition
from schemas.normalized import NormalizedProduct

logger = logging.getLogger(__name__)

# Columns requested from the affiliate feed download
FEED_COLUMNS = [
    "product_name",
    "description",
    "search_price",
    "currency",
    "merchant_image_url",
    "aw_product_id",
    "merchant_product_id",
    "merchant_category",
    "aw_deep_link",
    "merchant_deep_link",
]

CURRENCY_ALIASES = {
    "€": "EUR",
    "EURO": "EUR",
    "EUROS": "EUR",
    "$": "USD",
    "US$": "USD",
    "DOLLAR": "USD",
    "DOLLARS": "USD",
    "£": "GBP",
    "POUND": "GBP",
    "POUNDS": "GBP",
}

# Checked in order; partial matches fall through to the next entry
CONDITION_ALIASES = [
    ("like new", ProductCondition.LIKE_NEW),
    ("como nuevo", ProductCondition.LIKE_NEW),
    ("like-new", ProductCondition.LIKE_NEW),
    ("impecable", ProductCondition.LIKE_NEW),
    ("perfecto estado", ProductCondition.LIKE_NEW),
    ("excelente", ProductCondition.LIKE_NEW),
    ("excellent", ProductCondition.LIKE_NEW),
    ("mint", ProductCondition.LIKE_NEW),
    ("brand new", ProductCondition.NEW),
    ("a estrenar", ProductCondition.NEW),
    ("precintado", ProductCondition.NEW),
    ("sealed", ProductCondition.NEW),
    ("nuevo", ProductCondition.NEW),
    ("new", ProductCondition.NEW),
    ("para piezas", ProductCondition.POOR),
    ("for parts", ProductCondition.POOR),
    ("defectuoso", ProductCondition.POOR),
    ("broken", ProductCondition.POOR),
    ("roto", ProductCondition.POOR),
    ("damaged", ProductCondition.POOR),
    ("poor", ProductCondition.POOR),
    ("algun defecto", ProductCondition.FAIR),
    ("aceptable", ProductCondition.FAIR),
    ("acceptable", ProductCondition.FAIR),
    ("some wear", ProductCondition.FAIR),
    ("regular", ProductCondition.FAIR),
    ("fair", ProductCondition.FAIR),
    ("buen estado", ProductCondition.GOOD),
    ("muy bueno", ProductCondition.GOOD),
    ("very good", ProductCondition.GOOD),
    ("segunda mano", ProductCondition.GOOD),
    ("usado", ProductCondition.GOOD),
    ("used", ProductCondition.GOOD),
    ("bueno", ProductCondition.GOOD),
    ("good", ProductCondition.GOOD),
]

_PRICE_NOISE = re.compile(r"[€$£\s]|EUR|USD|GBP", re.IGNORECASE)


class RawRecord(Mapping):
    """
    Read-only view over an untyped feed row or submission.

    Values are exposed as trimmed strings; nulls, NaN and non-scalar values
    read as empty. Field access is explicit: callers name every alias they
    accept and decide whether a field is required.
    """

    def __init__(self, data: Mapping[str, Any]):
        self._data = data

    def __getitem__(self, key: str) -> str:
        return self._clean(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @staticmethod
    def _clean(value: Any) -> str:
        if value is None or isinstance(value, (dict, list)):
            return ""
        if isinstance(value, float) and value != value:  # NaN from the CSV decoder
            return ""
        return str(value).strip()

    def raw(self, key: str) -> Any:
        return self._data.get(key)

    def text(self, *keys: str) -> str:
        """First non-empty value among keys, or an empty string"""
        for key in keys:
            if key in self._data:
                value = self._clean(self._data[key])
                if value:
                    return value
        return ""

    def require(self, *keys: str) -> str:
        value = self.text(*keys)
        if not value:
            raise NormalizationError(
                f"Missing required field {keys[0]}",
                context={"field_name": keys[0], "aliases": list(keys)}
            )
        return value


def parse_price(value: Any) -> Optional[Decimal]:
    """
    Parse a non-negative decimal price.

    Accepts numbers and strings such as "12.99", "12,99 €" or "EUR 1200".
    Returns None for anything unparseable or negative.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        cleaned = str(value)
    else:
        cleaned = _PRICE_NOISE.sub("", str(value))
        if "," in cleaned and "." in cleaned:
            # "1.299,00" -> thousands dot, decimal comma
            if cleaned.rfind(",") > cleaned.rfind("."):
                cleaned = cleaned.replace(".", "").replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")
    if not cleaned:
        return None
    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


def normalize_currency(value: Optional[str]) -> str:
    if not value or not value.strip():
        return settings.DEFAULT_CURRENCY
    currency = value.strip().upper()
    return CURRENCY_ALIASES.get(currency, currency)


def normalize_condition(value: Optional[str], default: ProductCondition = ProductCondition.GOOD) -> ProductCondition:
    if not value:
        return default
    folded = fold(value).strip()
    try:
        return ProductCondition(folded)
    except ValueError:
        pass
    for alias, condition in CONDITION_ALIASES:
        if alias in folded:
            return condition
    return default


def platform_key(partner_name: str) -> str:
    """'Fnac ES' -> 'fnaces'"""
    return re.sub(r"[^a-z0-9]", "", (partner_name or "").lower())


def detect_platform(source_url: str) -> str:
    """Derive a platform key from the listing host ('www.ebay.es' -> 'ebay')"""
    host = urlparse(source_url).hostname or ""
    parts = [p for p in host.split(".") if p and p != "www"]
    if len(parts) >= 2:
        return platform_key(parts[-2])
    return platform_key(host)


class RecordNormalizer:
    """
    Build NormalizedProduct values.

    Two entry points:
    - normalize_feed_row: affiliate feed rows, category and price already
      resolved by the archive processor
    - normalize_submission: ad-hoc submitted records with flexible field
      names; classifies and parses on its own
    """

    def __init__(self, default_currency: Optional[str] = None):
        self.default_currency = default_currency or settings.DEFAULT_CURRENCY

    def normalize_feed_row(
        self,
        record: RawRecord,
        platform: str,
        category: Category,
        price: Decimal,
    ) -> NormalizedProduct:
        """
        Map an affiliate feed row.

        Raises:
            NormalizationError: title or tracking link missing
            ValidationError: the canonical shape rejects the values
        """
        title = record.require("product_name")
        source_url = record.require("aw_deep_link", "merchant_deep_link")

        currency = record.text("currency")
        return self._build(
            title=title,
            description=record.text("description"),
            price=price,
            currency=normalize_currency(currency) if currency else self.default_currency,
            image_url=record.text("merchant_image_url") or None,
            source_url=source_url,
            platform=platform,
            category=category,
            condition=ProductCondition.NEW,
        )

    def normalize_submission(self, raw: Mapping[str, Any]) -> NormalizedProduct:
        """
        Map a submitted record.

        Raises:
            NormalizationError: a required field is missing, the price is
                unparseable or the category cannot be resolved
            ValidationError: the canonical shape rejects the values
        """
        if not isinstance(raw, Mapping):
            raise NormalizationError("Submitted product is not an object", context={"type": type(raw).__name__})

        record = RawRecord(raw)
        title = record.require("title", "name")
        source_url = record.require("source_url", "sourceUrl", "url", "link")

        price = parse_price(record.raw("price"))
        if price is None:
            raise NormalizationError("Invalid price", context={"field_name": "price", "source_url": source_url})

        category = resolve_category(record.text("category", "categoryName"), title)
        if category is None:
            raise NormalizationError(
                "Unclassifiable category",
                context={"field_name": "category", "source_url": source_url}
            )

        images = raw.get("images")
        image_url = record.text("image_url", "imageUrl", "image")
        if not image_url and isinstance(images, list) and images:
            image_url = RawRecord._clean(images[0])

        platform = platform_key(record.text("platform", "source")) or detect_platform(source_url)

        return self._build(
            title=title,
            description=record.text("description"),
            price=price,
            currency=normalize_currency(record.text("currency")),
            image_url=image_url or None,
            source_url=source_url,
            platform=platform,
            category=category,
            condition=normalize_condition(record.text("condition", "state")),
        )

    @staticmethod
    def _build(**fields) -> NormalizedProduct:
        try:
            return NormalizedProduct(**fields)
        except PydanticValidationError as e:
            raise ValidationError(
                "Normalized product failed validation",
                context={
                    "source_url": fields.get("source_url"),
                    "field_errors": [
                        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                        for err in e.errors()
                    ],
                },
                original_exception=e
            )

