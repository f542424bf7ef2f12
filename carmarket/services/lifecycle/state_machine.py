from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class ListingStatus(str, Enum):
    Draft = "draft"
    Pending = "pending"
    Active = "active"
    Rejected = "rejected"
    Sold = "sold"
    Deleted = "deleted"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> "ListingStatus":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip()
        if not raw:
            raise ValueError("status required")
        # The first API wrote "reject" into the status column.
        if raw.lower() == "reject":
            return cls.Rejected
        try:
            return cls(raw.lower())
        except ValueError:
            pass
        member = cls.__members__.get(raw)
        if member is not None:
            return member
        raise ValueError(f"unknown_listing_status {raw}")


class ListingAction(str, Enum):
    Publish = "publish"
    Approve = "approve"
    Reject = "reject"
    Feature = "feature"
    MarkSold = "markSold"
    Delete = "delete"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> "ListingAction":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip()
        if not raw:
            raise ValueError("action required")
        alias = _ACTION_ALIASES.get(raw.lower())
        if alias is not None:
            return alias
        raise ValueError(f"unknown_listing_action {raw}")


_ACTION_ALIASES: dict[str, ListingAction] = {
    "publish": ListingAction.Publish,
    "approve": ListingAction.Approve,
    "reject": ListingAction.Reject,
    "feature": ListingAction.Feature,
    "marksold": ListingAction.MarkSold,
    "mark_sold": ListingAction.MarkSold,
    "sold": ListingAction.MarkSold,
    "delete": ListingAction.Delete,
}


@dataclass(frozen=True)
class Transition:
    action: ListingAction
    valid_from: frozenset[ListingStatus]
    target: ListingStatus
    # Publish lands elsewhere when a reviewer does it.
    privileged_target: ListingStatus | None = None

    def target_for(self, *, privileged: bool) -> ListingStatus:
        if privileged and self.privileged_target is not None:
            return self.privileged_target
        return self.target


TERMINAL_STATUSES = frozenset({ListingStatus.Deleted})

TRANSITIONS: Mapping[ListingAction, Transition] = MappingProxyType(
    {
        ListingAction.Publish: Transition(
            action=ListingAction.Publish,
            valid_from=frozenset({ListingStatus.Draft}),
            target=ListingStatus.Pending,
            privileged_target=ListingStatus.Active,
        ),
        ListingAction.Approve: Transition(
            action=ListingAction.Approve,
            valid_from=frozenset({ListingStatus.Pending}),
            target=ListingStatus.Active,
        ),
        ListingAction.Reject: Transition(
            action=ListingAction.Reject,
            valid_from=frozenset({ListingStatus.Pending}),
            target=ListingStatus.Rejected,
        ),
        ListingAction.Feature: Transition(
            action=ListingAction.Feature,
            valid_from=frozenset({ListingStatus.Active}),
            target=ListingStatus.Active,
        ),
        ListingAction.MarkSold: Transition(
            action=ListingAction.MarkSold,
            valid_from=frozenset({ListingStatus.Active}),
            target=ListingStatus.Sold,
        ),
        ListingAction.Delete: Transition(
            action=ListingAction.Delete,
            valid_from=frozenset(s for s in ListingStatus if s not in TERMINAL_STATUSES),
            target=ListingStatus.Deleted,
        ),
    }
)

_missing = [a.value for a in ListingAction if a not in TRANSITIONS]
if _missing:
    raise RuntimeError(f"actions without transitions: {', '.join(_missing)}")


def transition_for(action: ListingAction) -> Transition:
    return TRANSITIONS[ListingAction.parse(action)]


def is_valid_transition(action: ListingAction, status: ListingStatus) -> bool:
    return ListingStatus.parse(status) in transition_for(action).valid_from


def valid_actions_from(status: ListingStatus) -> tuple[ListingAction, ...]:
    current = ListingStatus.parse(status)
    return tuple(a for a, t in TRANSITIONS.items() if current in t.valid_from)


def target_status(action: ListingAction, *, privileged: bool = False) -> ListingStatus:
    return transition_for(action).target_for(privileged=privileged)


def is_terminal(status: ListingStatus) -> bool:
    return ListingStatus.parse(status) in TERMINAL_STATUSES
