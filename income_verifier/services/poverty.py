"""
Income Verifier - Federal Poverty Level
2024 HHS poverty guidelines for the 48 contiguous states and D.C.

Eligibility is judged against 200% of the guideline for the household.
"""

# 100% FPL by household size.
FEDERAL_POVERTY_LEVELS: dict[int, int] = {
    1: 15060,
    2: 20440,
    3: 25820,
    4: 31200,
    5: 36580,
    6: 41960,
    7: 47340,
    8: 52720,
}

# Added per person beyond the largest tabulated household.
FPL_ADDITIONAL_PERSON_AMOUNT = 5380

ELIGIBILITY_MULTIPLIER = 2

_LARGEST_TABULATED = max(FEDERAL_POVERTY_LEVELS)


def poverty_level(household_size: int) -> int:
    """Return the 100% FPL dollar amount for `household_size` (>= 1)."""
    if household_size < 1:
        raise ValueError("household_size must be at least 1")
    if household_size <= _LARGEST_TABULATED:
        return FEDERAL_POVERTY_LEVELS[household_size]
    extra_people = household_size - _LARGEST_TABULATED
    return FEDERAL_POVERTY_LEVELS[_LARGEST_TABULATED] + FPL_ADDITIONAL_PERSON_AMOUNT * extra_people


def poverty_threshold(household_size: int) -> int:
    """Income ceiling for eligibility: 200% of the poverty level."""
    return ELIGIBILITY_MULTIPLIER * poverty_level(household_size)
