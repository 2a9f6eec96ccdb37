"""Utilities and constants."""

from portfolio_service.utils.constants import UNDEFINED, is_undefined
from portfolio_service.utils.dates import InvalidDateRangeError, parse_date, validate_range
from portfolio_service.utils.default_rules import DEFAULT_RULES, DEFAULT_POLICY_RULE, DEFAULT_CLAIM_RULE

__all__ = [
    'UNDEFINED',
    'is_undefined',
    'InvalidDateRangeError',
    'parse_date',
    'validate_range',
    'DEFAULT_RULES',
    'DEFAULT_POLICY_RULE',
    'DEFAULT_CLAIM_RULE',
]
