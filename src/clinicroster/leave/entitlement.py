"""Statutory annual leave entitlement.

- Under one year of service: one day per completed month, at most 11.
- One to three years: 15 days.
- Three years or more: 15 plus one day for every two years beyond the
  first, at most 25.
"""

from datetime import date
from typing import Optional

from clinicroster.domain.models import Staff

FIRST_YEAR_CAP = 11
BASE_DAYS = 15
MAX_DAYS = 25


def completed_months(hire_date: date, on: date) -> int:
    months = (on.year - hire_date.year) * 12 + (on.month - hire_date.month)
    if on.day < hire_date.day:
        months -= 1
    return max(0, months)


def annual_leave_entitlement(hire_date: Optional[date], on: date) -> int:
    """Annual leave days earned as of ``on``; 0 without a hire date."""
    if hire_date is None or on < hire_date:
        return 0
    months = completed_months(hire_date, on)
    years = months // 12
    if years < 1:
        return min(months, FIRST_YEAR_CAP)
    if years < 3:
        return BASE_DAYS
    return min(BASE_DAYS + (years - 1) // 2, MAX_DAYS)


def remaining_annual_leave(member: Staff, on: date) -> Optional[int]:
    """Unused entitlement, or None when the hire date is unknown."""
    if member.hire_date is None:
        return None
    return annual_leave_entitlement(member.hire_date, on) - member.annual_leave_used
