from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from carmarket.services.lifecycle.permissions import Permission


class Role(str, Enum):
    Buyer = "buyer"
    Seller = "seller"
    DealerBasic = "dealer_basic"
    DealerPremium = "dealer_premium"
    Garage = "garage"
    Moderator = "moderator"
    SeniorModerator = "senior_moderator"
    Admin = "admin"
    SuperAdmin = "super_admin"

    def __str__(self) -> str:
        return self.value

    @property
    def legacy_id(self) -> int:
        return _LEGACY_IDS[self]

    @property
    def is_dealer(self) -> bool:
        return self in (Role.DealerBasic, Role.DealerPremium)

    @classmethod
    def parse(cls, value) -> "Role":
        """Resolve a role from the shapes older clients still send.

        Accepts the enum itself, its value (``"dealer_basic"``), the member
        name (``"DealerBasic"``), the upper-snake names of the first API
        (``"SHOWROOM_BASIC"``) and the numeric role ids of that API.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"unknown_role {value!r}")
        if isinstance(value, int):
            return _role_from_legacy_id(value)
        raw = str(value or "").strip()
        if not raw:
            raise ValueError("role required")
        if raw.isdigit():
            return _role_from_legacy_id(int(raw))
        member = cls.__members__.get(raw)
        if member is not None:
            return member
        key = raw.upper().replace("-", "_").replace(" ", "_")
        if key in _LEGACY_NAMES:
            return _LEGACY_NAMES[key]
        try:
            return cls(key.lower())
        except ValueError:
            raise ValueError(f"unknown_role {raw}") from None


_LEGACY_IDS: dict[Role, int] = {
    Role.Buyer: 1,
    Role.Seller: 2,
    Role.DealerBasic: 3,
    Role.DealerPremium: 4,
    Role.Moderator: 5,
    Role.SeniorModerator: 6,
    Role.Admin: 7,
    Role.SuperAdmin: 8,
    Role.Garage: 9,
}

_LEGACY_NAMES: dict[str, Role] = {
    "BUYER": Role.Buyer,
    "SELLER": Role.Seller,
    "SHOWROOM_BASIC": Role.DealerBasic,
    "SHOWROOM_PREMIUM": Role.DealerPremium,
    "DEALER_BASIC": Role.DealerBasic,
    "DEALER_PREMIUM": Role.DealerPremium,
    "GARAGE": Role.Garage,
    "MODERATOR": Role.Moderator,
    "SENIOR_MODERATOR": Role.SeniorModerator,
    "ADMIN": Role.Admin,
    "SUPER_ADMIN": Role.SuperAdmin,
}


def _role_from_legacy_id(role_id: int) -> Role:
    for role, legacy in _LEGACY_IDS.items():
        if legacy == int(role_id):
            return role
    raise ValueError(f"unknown_role_id {role_id}")


_BUYER = frozenset(
    {
        Permission.BrowseListings,
        Permission.SaveSearches,
        Permission.SaveFavorites,
        Permission.ContactSellers,
        Permission.ViewSellerProfiles,
        Permission.LeaveReviews,
        Permission.ManageAlerts,
    }
)

_SELLER = frozenset(
    {
        Permission.CreateListings,
        Permission.ManageOwnListings,
        Permission.ViewListingAnalytics,
        Permission.RespondToInquiries,
        Permission.ManageSellerProfile,
        Permission.BrowseListings,
        Permission.SaveFavorites,
    }
)

_DEALER_BASIC = frozenset(
    {
        Permission.CreateListings,
        Permission.ManageShowroomListings,
        Permission.ManageShowroomProfile,
        Permission.ManageShowroomStaff,
        Permission.AccessShowroomAnalytics,
        Permission.RespondToInquiries,
        Permission.BrowseListings,
    }
)

_DEALER_PREMIUM = frozenset(
    {
        Permission.CreateListings,
        Permission.ManageShowroomListings,
        Permission.ManageShowroomProfile,
        Permission.ManageShowroomStaff,
        Permission.AccessShowroomAnalytics,
        Permission.RespondToInquiries,
        Permission.BrowseListings,
        Permission.UseBulkUpload,
        Permission.VerifiedSellerBadge,
    }
)

_GARAGE = frozenset(
    {
        Permission.CreateListings,
        Permission.ManageOwnListings,
        Permission.RespondToInquiries,
        Permission.BrowseListings,
    }
)

_MODERATOR = frozenset(
    {
        Permission.ApproveListings,
        Permission.ManageReports,
        Permission.FlagInappropriate,
        Permission.TempSuspendUsers,
        Permission.ViewModerationLogs,
        Permission.BrowseListings,
    }
)

_SENIOR_MODERATOR = frozenset(
    {
        Permission.ApproveListings,
        Permission.ManageReports,
        Permission.FlagInappropriate,
        Permission.TempSuspendUsers,
        Permission.ViewModerationLogs,
        Permission.BrowseListings,
        Permission.ManageContent,
        Permission.ManageVerifications,
    }
)

_ADMIN = frozenset(
    {
        Permission.ManageAllListings,
        Permission.ManageAllUsers,
        Permission.ApproveListings,
        Permission.CreatePromotions,
        Permission.ManagePlatformSettings,
        Permission.ManageContent,
        Permission.ManageShowrooms,
        Permission.ManageReports,
        Permission.ViewModerationLogs,
        Permission.ViewPlatformAnalytics,
        Permission.ManageSupportTickets,
        Permission.BrowseListings,
    }
)

# Super admins hold every token in the catalog.
_SUPER_ADMIN = frozenset(Permission)


ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.Buyer: _BUYER,
        Role.Seller: _SELLER,
        Role.DealerBasic: _DEALER_BASIC,
        Role.DealerPremium: _DEALER_PREMIUM,
        Role.Garage: _GARAGE,
        Role.Moderator: _MODERATOR,
        Role.SeniorModerator: _SENIOR_MODERATOR,
        Role.Admin: _ADMIN,
        Role.SuperAdmin: _SUPER_ADMIN,
    }
)

_missing = [role.value for role in Role if role not in ROLE_PERMISSIONS]
if _missing:
    raise RuntimeError(f"roles without permission rows: {', '.join(_missing)}")


def permissions_of(role: Role) -> frozenset[Permission]:
    return ROLE_PERMISSIONS[Role.parse(role)]


def has_permission(role: Role, permission: Permission) -> bool:
    return Permission.parse(permission) in permissions_of(role)


def has_any_permission(role: Role, *permissions: Permission) -> bool:
    granted = permissions_of(role)
    return any(Permission.parse(p) in granted for p in permissions)


def role_catalog() -> list[dict]:
    out = []
    for role in Role:
        out.append(
            {
                "role": role.value,
                "legacy_id": role.legacy_id,
                "permissions": sorted(p.value for p in ROLE_PERMISSIONS[role]),
            }
        )
    return out
