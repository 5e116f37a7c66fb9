from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, Enum, Index
from datetime import datetime
from models.base import Base, Category, PriceScore, ProductCondition, enum_values


class Product(Base):
    """
    Canonical catalog entry.

    Identity:
    - source_url (the affiliate tracking link) is the natural key across runs;
      all writes are upserts keyed on it.

    Update policy:
    - Re-ingesting an existing source_url only refreshes price and updated_at.
      Title, category and price_score keep the values of the first insert so
      manual curation is never overwritten by a feed.
    """
    __tablename__ = "products"

    id = Column(BigInteger, primary_key=True, autoincrement=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    image_url = Column(String(2048), nullable=True)
    source_url = Column(String(2048), nullable=False, unique=True)

    platform = Column(String(100), nullable=False, index=True)
    category = Column(
        Enum(Category, name="product_category", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    condition = Column(
        Enum(ProductCondition, name="product_condition", values_callable=enum_values),
        nullable=False,
        default=ProductCondition.NEW,
    )
    price_score = Column(
        Enum(PriceScore, name="price_score", values_callable=enum_values),
        nullable=True,
    )

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_products_category_price", "category", "price"),
        Index("idx_products_platform_updated", "platform", "updated_at"),
    )
