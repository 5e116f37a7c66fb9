"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (Category, PriceScore,
          ProductCondition, SyncStatus)
    product: Canonical catalog products, unique on source_url
    sync_log: Per-partner sync run tracking

Usage:
    from models.product import Product
    from models.sync_log import SyncLog
    from models.base import Category, SyncStatus
"""

__all__ = [
    "Base",
    "Category",
    "PriceScore",
    "ProductCondition",
    "SyncStatus",
    "Product",
    "SyncLog",
]
