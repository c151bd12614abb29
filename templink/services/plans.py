from typing import Union

from ..errors import PlanUpgradeRequired
from ..models import Plan

PLAN_LEVELS = {
    Plan.FREE: 0,
    Plan.PRO: 1,
    Plan.BUSINESS: 2,
}


def plan_level(plan: Union[Plan, str, None]) -> int:
    """Unknown or missing tiers rank as the lowest."""
    try:
        return PLAN_LEVELS[Plan(plan)]
    except ValueError:
        return 0


def plan_allows(current: Union[Plan, str, None], required: Union[Plan, str]) -> bool:
    return plan_level(current) >= plan_level(required)


def require_plan(current: Union[Plan, str, None], required: Union[Plan, str]) -> None:
    if not plan_allows(current, required):
        raise PlanUpgradeRequired(
            current_plan=getattr(current, "value", current) or Plan.FREE.value,
            required_plan=Plan(required).value,
        )
