from typing import Callable

from services.exceptions import FleetValidationError


def apply_rule(rule: Callable, value):
    """Runs a BusinessRules check inside a pydantic validator."""
    try:
        return rule(value)
    except FleetValidationError as e:
        raise ValueError(e.message)
