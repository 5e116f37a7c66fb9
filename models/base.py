from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class Category(str, enum.Enum):
    """Closed catalog taxonomy"""
    TECH_ELECTRONICS = "tech-electronics"
    FASHION = "fashion"
    HOME_GARDEN = "home-garden"
    SPORTS_LEISURE = "sports-leisure"
    BABY_KIDS = "baby-kids"
    MOVIES = "movies"
    BOOKS = "books"
    MUSIC = "music"
    COLLECTIBLES_ART = "collectibles-art"
    DIY = "diy"
    SERVICES = "services"
    AGRICULTURE_INDUSTRIAL = "agriculture-industrial"
    CARS_MOTORCYCLES = "cars-motorcycles"
    REAL_ESTATE = "real-estate"
    BEAUTY_PERSONAL_CARE = "beauty-personal-care"
    MOTOR_ACCESSORIES = "motor-accessories"
    TRAVEL_EXPERIENCES = "travel-experiences"
    OTHERS = "others"


class PriceScore(str, enum.Enum):
    """Price competitiveness relative to the category median"""
    BARGAIN = "bargain"
    FAIR = "fair"
    EXPENSIVE = "expensive"


class ProductCondition(str, enum.Enum):
    NEW = "new"
    LIKE_NEW = "like-new"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class SyncStatus(str, enum.Enum):
    """Sync log status. Only RUNNING is transient."""
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    BANNED = "banned"
    SUSPICIOUS = "suspicious"
    TIMEOUT = "timeout"


def enum_values(enum_cls):
    """Persist enum values ("tech-electronics") rather than member names"""
    return [member.value for member in enum_cls]
