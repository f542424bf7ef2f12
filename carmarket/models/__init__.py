from .user import User  # noqa: F401
from .promotion_package import PromotionPackage  # noqa: F401
from .listing import CarListing  # noqa: F401
from .listing_transition import ListingTransition  # noqa: F401
from .listing_event import ListingEvent  # noqa: F401
