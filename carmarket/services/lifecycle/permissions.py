from __future__ import annotations

from enum import Enum


class Permission(str, Enum):
    # Buyer
    BrowseListings = "browse_listings"
    SaveSearches = "save_searches"
    SaveFavorites = "save_favorites"
    ContactSellers = "contact_sellers"
    ViewSellerProfiles = "view_seller_profiles"
    LeaveReviews = "leave_reviews"
    ManageAlerts = "manage_alerts"

    # Private sellers
    CreateListings = "create_listings"
    ManageOwnListings = "manage_own_listings"
    ViewListingAnalytics = "view_listing_analytics"
    RespondToInquiries = "respond_to_inquiries"
    ManageSellerProfile = "manage_seller_profile"

    # Showrooms / dealers
    ManageShowroomProfile = "manage_showroom_profile"
    ManageShowroomListings = "manage_showroom_listings"
    UseBulkUpload = "use_bulk_upload"
    AccessShowroomAnalytics = "access_showroom_analytics"
    ManageShowroomStaff = "manage_showroom_staff"
    CreatePromotions = "create_promotions"
    VerifiedSellerBadge = "verified_seller_badge"

    # Moderation
    ApproveListings = "approve_listings"
    FlagInappropriate = "flag_inappropriate"
    TempSuspendUsers = "temp_suspend_users"
    ManageReports = "manage_reports"
    ViewModerationLogs = "view_moderation_logs"

    # Platform administration
    ManageAllListings = "manage_all_listings"
    ManageAllUsers = "manage_all_users"
    ManageShowrooms = "manage_showrooms"
    ManagePlatformFinances = "manage_platform_finances"
    ManagePlatformSettings = "manage_platform_settings"
    ViewPlatformAnalytics = "view_platform_analytics"
    ManageContent = "manage_content"
    ManageSupportTickets = "manage_support_tickets"
    ManagePayments = "manage_payments"
    ManagePromotions = "manage_promotions"
    ManageVerifications = "manage_verifications"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> "Permission":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip()
        if not raw:
            raise ValueError("permission required")
        try:
            return cls(raw.lower())
        except ValueError:
            pass
        member = cls.__members__.get(raw)
        if member is not None:
            return member
        raise ValueError(f"unknown_permission {raw}")


# Permissions that let an owner act on their own listing.
OWNER_LISTING_PERMISSIONS = frozenset(
    {
        Permission.ManageOwnListings,
        Permission.ManageShowroomListings,
    }
)

# Permissions that let a reviewer move listings through moderation.
REVIEW_PERMISSIONS = frozenset(
    {
        Permission.ApproveListings,
        Permission.ManageAllListings,
    }
)

PROMOTION_PERMISSIONS = frozenset(
    {
        Permission.ManageAllListings,
        Permission.CreatePromotions,
    }
)
