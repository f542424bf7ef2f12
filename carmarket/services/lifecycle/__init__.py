from .permissions import Permission  # noqa: F401
from .roles import (  # noqa: F401
    ROLE_PERMISSIONS,
    Role,
    has_any_permission,
    has_permission,
    permissions_of,
    role_catalog,
)
from .state_machine import (  # noqa: F401
    TRANSITIONS,
    ListingAction,
    ListingStatus,
    is_terminal,
    is_valid_transition,
    target_status,
    valid_actions_from,
)
from .snapshot import ListingSnapshot, featured_days_remaining  # noqa: F401
from .guard import Actor, Decision, DenyReason, authorize, available_actions  # noqa: F401
from .validator import ActionPayload, ActionRequest, Validation, validate  # noqa: F401
from .executor import SideEffect, execute  # noqa: F401
from .engine import TransitionRecord, TransitionResult, process  # noqa: F401
