"""Campaign status state machine."""

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from scoop.core.errors import TransitionRejected


class CampaignStatus(str, Enum):
    """Lifecycle of a campaign."""

    PROCESSING = "processing"
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    CHANGES_MADE = "changes_made"
    SENT = "sent"
    FAILED = "failed"


class StatusAction(str, Enum):
    """Events that move a campaign between statuses."""

    FINISH_PROCESSING = "finish_processing"
    SEND_REVIEW = "send_review"
    MARK_CHANGES = "changes_made"
    SEND_FINAL = "send_final"
    FAIL = "fail"
    REOPEN = "reopen"


_ALL_BUT_SENT = frozenset(s for s in CampaignStatus if s is not CampaignStatus.SENT)

_TRANSITIONS: Dict[StatusAction, Tuple[FrozenSet[CampaignStatus], CampaignStatus]] = {
    StatusAction.FINISH_PROCESSING: (
        frozenset({CampaignStatus.PROCESSING}),
        CampaignStatus.DRAFT,
    ),
    StatusAction.SEND_REVIEW: (
        frozenset({CampaignStatus.DRAFT, CampaignStatus.CHANGES_MADE}),
        CampaignStatus.IN_REVIEW,
    ),
    StatusAction.MARK_CHANGES: (
        frozenset({CampaignStatus.IN_REVIEW}),
        CampaignStatus.CHANGES_MADE,
    ),
    StatusAction.SEND_FINAL: (
        frozenset({CampaignStatus.IN_REVIEW, CampaignStatus.CHANGES_MADE}),
        CampaignStatus.SENT,
    ),
    StatusAction.FAIL: (_ALL_BUT_SENT, CampaignStatus.FAILED),
    StatusAction.REOPEN: (frozenset({CampaignStatus.FAILED}), CampaignStatus.DRAFT),
}


def transition(current: CampaignStatus, action: StatusAction) -> CampaignStatus:
    """Return the status reached by applying ``action`` to ``current``.

    Args:
        current: Status the campaign is in now
        action: Requested action

    Returns:
        The next status

    Raises:
        TransitionRejected: If the action is not allowed from ``current``
    """
    current = CampaignStatus(current)
    action = StatusAction(action)
    allowed_from, target = _TRANSITIONS[action]
    if current not in allowed_from:
        raise TransitionRejected(
            f"Cannot {action.value} a campaign that is {current.value}",
            current=current.value,
            action=action.value,
        )
    return target


def allowed_actions(current: CampaignStatus) -> list:
    """List the actions accepted from ``current``."""
    current = CampaignStatus(current)
    return [a for a, (sources, _) in _TRANSITIONS.items() if current in sources]
