"""
Map merchant category text and product names onto the catalog taxonomy.

Two ordered rule tables are evaluated top to bottom, first match wins:

1. MERCHANT_CATEGORY_RULES run against the merchant's own category text
   (Spanish and English vocabulary). Media categories come first so that
   "Electrónica > Música" or "Audio > CD" land in music and not in
   tech-electronics.
2. PRODUCT_NAME_RULES run against category text + product name and use
   whole-word brand/product vocabulary.

Unmatched records return None. Callers drop them; "others" is never a
fallback because it would dilute the catalog.
"""

import re
import unicodedata
from typing import List, Optional, Pattern, Tuple
from models.base import Category

CategoryRule = Tuple[Category, Pattern]


def _rule(category: Category, pattern: str) -> CategoryRule:
    return category, re.compile(pattern, re.IGNORECASE)


# Patterns are written without accents; input is accent-folded first.
MERCHANT_CATEGORY_RULES: List[CategoryRule] = [
    _rule(Category.MUSIC, r"musica|music|\bcds?\b|vinyl|vinilo|\bdiscos?\b(?! duros?)|grabaciones|instrumentos musicales"),
    _rule(Category.BOOKS, r"libros?|\bbooks?\b|literatura|comics?|\bmanga\b(?! (corta|larga))|ebooks?|novela"),
    _rule(Category.MOVIES, r"\bdvd\b|blu-?ray|movies|peliculas?|\bcine\b|series de tv"),
    _rule(Category.TRAVEL_EXPERIENCES, r"viajes?|travel|experiencias?|experiences|hoteles?|escapadas?|vuelos?"),
    _rule(Category.MOTOR_ACCESSORIES, r"accesorios (para )?(coche|moto|automovil)|recambios|car accessories|auto parts|neumaticos|tyres|tires"),
    _rule(Category.CARS_MOTORCYCLES, r"\bcoches\b|\bmotos\b|vehicles|vehiculos|automocion|motorcycles|\bcars\b"),
    _rule(Category.REAL_ESTATE, r"inmobiliaria|real estate|\bpisos\b|viviendas|apartments"),
    _rule(Category.BEAUTY_PERSONAL_CARE, r"belleza|beauty|perfumes?|perfumeria|cosmetica|cosmetics|maquillaje|makeup|cuidado personal|personal care|fragrances?"),
    _rule(Category.TECH_ELECTRONICS, r"electronics|electronica|computers|ordenadores|phones|telefon|moviles|tecnologia|informatica|\baudio\b|\bvideo\b|consolas|gaming|videojuegos|video games|fotografia|cameras"),
    _rule(Category.BABY_KIDS, r"juguetes|\btoys\b|\bbaby\b|\bbebes?\b|\bninos?\b|infantil|puericultura|\bkids\b|juegos de mesa"),
    _rule(Category.FASHION, r"apparel|clothing|\bshoes\b|ropa|\bmoda\b|calzado|joyeria|jewel?lery|jewelry|relojes|watches|bolsos|handbags|complementos|accesorios de moda"),
    _rule(Category.SPORTS_LEISURE, r"deportes?|sports?|fitness|gimnasio|aire libre|outdoor|camping|ciclismo|running"),
    _rule(Category.DIY, r"bricolaje|\bdiy\b|herramientas|tools|hardware|ferreteria"),
    _rule(Category.HOME_GARDEN, r"\bhome\b|garden|furniture|kitchen|hogar|jardin|muebles|cocina|decoracion|electrodomesticos|textil hogar"),
    _rule(Category.COLLECTIBLES_ART, r"\barts?\b|hobbies|crafts|\barte\b|coleccionismo|collectibles|papeleria|manualidades"),
    _rule(Category.AGRICULTURE_INDUSTRIAL, r"agricultura|agricultural|industrial|maquinaria|machinery"),
    _rule(Category.SERVICES, r"servicios|services|suscripciones|subscriptions|cursos|courses"),
]

PRODUCT_NAME_RULES: List[CategoryRule] = [
    _rule(Category.TECH_ELECTRONICS, r"\b(iphone|ipad|laptop|macbook|samsung|pixel|camera|camara|headphones?|auriculares|speaker|altavoz|console|consola|nintendo|playstation|ps5|xbox|tablet|movil|smartphone|ordenador|portatil|teclado|raton|monitor|smartwatch)\b"),
    _rule(Category.MUSIC, r"\b(cd|vinyl|vinilo|album|musica|music|sinfonia|concierto)\b"),
    _rule(Category.BOOKS, r"\b(book|libro|novela|lectura|tapa blanda|tapa dura|paperback|hardcover)\b"),
    _rule(Category.MOVIES, r"\b(dvd|blu-?ray|movie|pelicula|temporada completa)\b"),
    _rule(Category.BEAUTY_PERSONAL_CARE, r"\b(perfume|eau de toilette|eau de parfum|colonia|crema facial|serum|maquillaje|pintalabios|mascara de pestanas)\b"),
    _rule(Category.FASHION, r"\b(shirt|dress|jeans|jacket|coat|sneakers|shoes|boots|bag|purse|wallet|watch|jewelry|ropa|camiseta|camisa|pantalon|vestido|abrigo|chaqueta|zapatos|zapatillas|botas|bolso|cartera|reloj|pulsera|collar|pendientes|calcetines)\b"),
    _rule(Category.HOME_GARDEN, r"\b(sofa|chair|table|desk|lamp|bed|mattress|furniture|cookware|hogar|mueble|silla|mesa|escritorio|lampara|cama|colchon|jardin|cocina|sarten|olla|cojin|alfombra)\b"),
    _rule(Category.SPORTS_LEISURE, r"\b(bike|bicycle|gym|fitness|yoga|tennis|football|soccer|basketball|camping|tent|deporte|bici|bicicleta|gimnasio|futbol|baloncesto|tenis|mancuernas|esterilla)\b"),
    _rule(Category.BABY_KIDS, r"\b(toy|lego|doll|puzzle|baby|stroller|crib|juguete|muneca|bebe|cuna|carrito|peluche|juego de mesa)\b"),
    _rule(Category.DIY, r"\b(drill|saw|hammer|screwdriver|taladro|sierra|martillo|destornillador|atornillador|bricolaje)\b"),
    _rule(Category.COLLECTIBLES_ART, r"\b(painting|sculpture|collectible|funko|antique|pintura|escultura|coleccion|lamina|acuarela)\b"),
    _rule(Category.MOTOR_ACCESSORIES, r"\b(neumatico|tyre|tire|dashcam|portabicis|baca|cadenas de nieve)\b"),
    _rule(Category.TRAVEL_EXPERIENCES, r"\b(escapada|experiencia|noche de hotel|spa para dos|vuelo)\b"),
]


def fold(text: str) -> str:
    """Lower-case and strip accents ("Música" -> "musica", "Niños" -> "ninos")"""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def _first_match(rules: List[CategoryRule], text: str) -> Optional[Category]:
    for category, pattern in rules:
        if pattern.search(text):
            return category
    return None


def classify(raw_category_text: Optional[str], item_name: Optional[str]) -> Optional[Category]:
    """
    Classify a record into the taxonomy.

    Args:
        raw_category_text: Merchant category path, e.g. "Música > Clásica"
        item_name: Product name

    Returns:
        Category, or None when neither rule table matches
    """
    category_text = fold(raw_category_text or "").strip()
    if category_text:
        category = _first_match(MERCHANT_CATEGORY_RULES, category_text)
        if category is not None:
            return category

    combined = f"{category_text} {fold(item_name or '')}".strip()
    if not combined:
        return None
    return _first_match(PRODUCT_NAME_RULES, combined)


def resolve_category(value: Optional[str], item_name: Optional[str] = None) -> Optional[Category]:
    """
    Accept an exact taxonomy slug ("books", "others") as-is, otherwise classify.

    Used for submitted records, which may already carry a catalog category.
    """
    if value:
        slug = value.strip().lower()
        try:
            return Category(slug)
        except ValueError:
            pass
    return classify(value, item_name)
