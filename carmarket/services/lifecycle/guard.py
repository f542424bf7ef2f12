from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from carmarket.services.lifecycle.permissions import (
    OWNER_LISTING_PERMISSIONS,
    PROMOTION_PERMISSIONS,
    REVIEW_PERMISSIONS,
    Permission,
)
from carmarket.services.lifecycle.roles import Role, has_any_permission, has_permission
from carmarket.services.lifecycle.snapshot import ListingSnapshot
from carmarket.services.lifecycle.state_machine import (
    ListingAction,
    ListingStatus,
    is_valid_transition,
    target_status,
)


class DenyReason(str, Enum):
    InvalidTransition = "InvalidTransition"
    Unauthorized = "Unauthorized"
    MissingReason = "MissingReason"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Actor:
    role: Role
    user_id: int

    @classmethod
    def from_values(cls, role, user_id) -> "Actor":
        if isinstance(user_id, bool) or user_id is None:
            raise ValueError("actor user_id required")
        try:
            uid = int(user_id)
        except (TypeError, ValueError):
            raise ValueError(f"invalid_actor_user_id {user_id!r}") from None
        return cls(role=Role.parse(role), user_id=uid)

    def can(self, permission: Permission) -> bool:
        return has_permission(self.role, permission)

    def owns(self, listing: ListingSnapshot) -> bool:
        return int(self.user_id) == int(listing.owner_id)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DenyReason | None = None
    target_status: ListingStatus | None = None
    # True when a reviewer (not the owner path) satisfied the rule.
    privileged: bool = False

    @classmethod
    def allow(cls, target: ListingStatus, *, privileged: bool = False) -> "Decision":
        return cls(allowed=True, target_status=target, privileged=privileged)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)

    def to_dict(self) -> dict:
        return {
            "allowed": bool(self.allowed),
            "reason": self.reason.value if self.reason else None,
            "target_status": self.target_status.value if self.target_status else None,
            "privileged": bool(self.privileged),
        }


def _owner_may_manage(actor: Actor, listing: ListingSnapshot) -> bool:
    return actor.owns(listing) and has_any_permission(actor.role, *OWNER_LISTING_PERMISSIONS)


def _is_reviewer(actor: Actor) -> bool:
    return has_any_permission(actor.role, *REVIEW_PERMISSIONS)


def _rule_publish(actor: Actor, listing: ListingSnapshot) -> tuple[bool, bool]:
    if _is_reviewer(actor):
        return True, True
    return _owner_may_manage(actor, listing), False


def _rule_review(actor: Actor, listing: ListingSnapshot) -> tuple[bool, bool]:
    return _is_reviewer(actor), True


def _rule_feature(actor: Actor, listing: ListingSnapshot) -> tuple[bool, bool]:
    return has_any_permission(actor.role, *PROMOTION_PERMISSIONS), True


def _rule_owner_or_platform(actor: Actor, listing: ListingSnapshot) -> tuple[bool, bool]:
    if _owner_may_manage(actor, listing):
        return True, False
    return has_permission(actor.role, Permission.ManageAllListings), True


# Each rule returns (satisfied, privileged).
_RULES = {
    ListingAction.Publish: _rule_publish,
    ListingAction.Approve: _rule_review,
    ListingAction.Reject: _rule_review,
    ListingAction.Feature: _rule_feature,
    ListingAction.MarkSold: _rule_owner_or_platform,
    ListingAction.Delete: _rule_owner_or_platform,
}

_missing = [a.value for a in ListingAction if a not in _RULES]
if _missing:
    raise RuntimeError(f"actions without authorization rules: {', '.join(_missing)}")


def authorize(actor: Actor, listing: ListingSnapshot, action: ListingAction) -> Decision:
    """Decide whether ``actor`` may apply ``action`` to ``listing``.

    The state check runs before any role check, so a wrong-state request
    is always reported as ``InvalidTransition`` whatever the caller's role.
    """
    action = ListingAction.parse(action)
    if not is_valid_transition(action, listing.status):
        return Decision.deny(DenyReason.InvalidTransition)

    satisfied, privileged = _RULES[action](actor, listing)
    if not satisfied:
        return Decision.deny(DenyReason.Unauthorized)
    return Decision.allow(target_status(action, privileged=privileged), privileged=privileged)


def available_actions(actor: Actor, listing: ListingSnapshot) -> list[ListingAction]:
    return [a for a in ListingAction if authorize(actor, listing, a).allowed]
