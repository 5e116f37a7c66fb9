"""
Trust engine - intent filtering, noise filtering and price scoring.

All functions are pure and operate on NormalizedProduct values. A product is
kept iff it has no "wanted/buying" intent and is not noise; the price score
is only computed for kept products about to be inserted.
"""

from decimal import Decimal, InvalidOperation
import re
from typing import Dict, Iterable, List, Mapping, Optional
from core.config import settings
from models.base import Category, PriceScore
from schemas.normalized import NormalizedProduct

# "Wanted / buying" phrases (Spanish and English). Substring match on title + description.
INTENT_KEYWORDS = [
    "busco",
    "compro",
    "buscando",
    "compraría",
    "necesito",
    "quiero comprar",
    "se busca",
    "looking for",
    "want to buy",
    "wtb",
]

ACCESSORY_PATTERN = re.compile(
    r"\b(funda|fundas|carcasa|case|cover|protector|cristal templado|cable|cargador|charger|adaptador|soporte|correa)\b",
    re.IGNORECASE,
)

CONTACT_SPAM_KEYWORDS = ["whatsapp", "telegram", "call me", "llámame", "llamame", "contacta"]

# Reference medians in EUR, refreshed out of band (see calculate_category_median)
CATEGORY_MEDIAN_PRICES: Dict[Category, Decimal] = {
    Category.TECH_ELECTRONICS: Decimal("120"),
    Category.FASHION: Decimal("25"),
    Category.HOME_GARDEN: Decimal("35"),
    Category.SPORTS_LEISURE: Decimal("45"),
    Category.BABY_KIDS: Decimal("20"),
    Category.MOVIES: Decimal("12"),
    Category.BOOKS: Decimal("15"),
    Category.MUSIC: Decimal("18"),
    Category.COLLECTIBLES_ART: Decimal("60"),
    Category.DIY: Decimal("30"),
    Category.SERVICES: Decimal("50"),
    Category.AGRICULTURE_INDUSTRIAL: Decimal("1200"),
    Category.CARS_MOTORCYCLES: Decimal("8500"),
    Category.REAL_ESTATE: Decimal("150000"),
    Category.BEAUTY_PERSONAL_CARE: Decimal("30"),
    Category.MOTOR_ACCESSORIES: Decimal("40"),
    Category.TRAVEL_EXPERIENCES: Decimal("90"),
    Category.OTHERS: Decimal("40"),
}


def has_wanted_intent(product: NormalizedProduct) -> bool:
    """True when the listing is a buy request rather than an offer"""
    search_text = f"{product.title} {product.description or ''}".lower()
    return any(keyword in search_text for keyword in INTENT_KEYWORDS)


def is_noise(
    product: NormalizedProduct,
    price_threshold: Optional[Decimal] = None,
    threshold_currency: Optional[str] = None,
) -> bool:
    """
    Detect listings that would pollute the catalog.

    Rules:
    - tech-electronics priced under the threshold whose title names an
      accessory (case, cable, charger...) rather than a device
    - titles soliciting off-platform contact, in any category
    """
    title = product.title.lower()

    if any(keyword in title for keyword in CONTACT_SPAM_KEYWORDS):
        return True

    threshold = settings.NOISE_PRICE_THRESHOLD if price_threshold is None else price_threshold
    currency = threshold_currency or settings.NOISE_PRICE_CURRENCY

    if (
        product.category == Category.TECH_ELECTRONICS
        and product.currency == currency
        and product.price < threshold
    ):
        return bool(ACCESSORY_PATTERN.search(title))

    return False


def is_trusted(product: NormalizedProduct) -> bool:
    return not has_wanted_intent(product) and not is_noise(product)


def filter_trusted(products: Iterable[NormalizedProduct]) -> List[NormalizedProduct]:
    return [product for product in products if is_trusted(product)]


def price_score(
    product: NormalizedProduct,
    category_median,
    band: Optional[Decimal] = None,
) -> Optional[PriceScore]:
    """
    Classify price against the category median.

    deviation = (price - median) / median
    - deviation < -band  -> bargain
    - deviation > +band  -> expensive
    - otherwise          -> fair (exactly +/-band is fair)

    Returns None when no usable median is available.
    """
    if category_median is None:
        return None
    try:
        median = Decimal(str(category_median))
    except InvalidOperation:
        return None
    if median <= 0:
        return None

    band = settings.PRICE_SCORE_BAND if band is None else Decimal(str(band))
    deviation = (Decimal(str(product.price)) - median) / median

    if deviation < -band:
        return PriceScore.BARGAIN
    if deviation > band:
        return PriceScore.EXPENSIVE
    return PriceScore.FAIR


def score_for_category(
    product: NormalizedProduct,
    medians: Optional[Mapping[Category, Decimal]] = None,
) -> Optional[PriceScore]:
    """Price score using the reference median table"""
    table = CATEGORY_MEDIAN_PRICES if medians is None else medians
    return price_score(product, table.get(product.category))


def calculate_category_median(prices: Iterable) -> Optional[Decimal]:
    """Median of a category's prices; None for an empty category"""
    ordered = sorted(Decimal(str(p)) for p in prices)
    if not ordered:
        return None

    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]
