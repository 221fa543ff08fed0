"""
Retention tiers and slot path resolution.

The directory layout is fixed so existing backup trees stay compatible:

    {dest}/daily/{sunday..saturday}
    {dest}/weekly/{week1..week4}
    {dest}/monthly/{january..december}
    {dest}/latest -> daily/<weekday>
"""

import posixpath
from datetime import date
from typing import Iterator, List, Tuple


WEEKDAYS = ('sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday')
MONTHS = ('january', 'february', 'march', 'april', 'may', 'june', 'july',
          'august', 'september', 'october', 'november', 'december')

LATEST_LINK = 'latest'


class Tier:
    """
    A fixed-size, ordered set of named slots.
    """

    def __init__(self, name: str, slot_names: Tuple[str, ...]):
        self.name = name
        self.slot_names = tuple(slot_names)

    @property
    def size(self) -> int:
        return len(self.slot_names)

    def slot(self, index: int) -> str:
        """Relative path of a slot, e.g. ``daily/thursday``."""
        return posixpath.join(self.name, self.slot_names[index])

    def slots(self) -> List[str]:
        return [self.slot(index) for index in range(self.size)]

    def __iter__(self) -> Iterator[str]:
        return iter(self.slots())

    def __len__(self):
        return self.size

    def __repr__(self):
        return f"Tier({self.name!r}, size={self.size})"


DAILY = Tier('daily', WEEKDAYS)
WEEKLY = Tier('weekly', tuple(f"week{i}" for i in range(1, 5)))
MONTHLY = Tier('monthly', MONTHS)


class TierLayout:
    """
    Resolves tier and slot paths under a destination root.
    """

    def __init__(self, root: str, daily: Tier = DAILY, weekly: Tier = WEEKLY, monthly: Tier = MONTHLY):
        self.root = root
        self.daily = daily
        self.weekly = weekly
        self.monthly = monthly

    @property
    def tiers(self) -> Tuple[Tier, Tier, Tier]:
        return self.daily, self.weekly, self.monthly

    def tier_root(self, tier: Tier) -> str:
        return posixpath.join(self.root, tier.name)

    def slot_path(self, tier: Tier, index: int) -> str:
        return posixpath.join(self.root, tier.slot(index))

    def slot_paths(self, tier: Tier) -> List[str]:
        return [self.slot_path(tier, index) for index in range(tier.size)]

    @property
    def latest_path(self) -> str:
        return posixpath.join(self.root, LATEST_LINK)

    def latest_target(self, weekday: int) -> str:
        """Relative link target for ``latest``, as in ``daily/thursday``."""
        return self.daily.slot(weekday)


def weekday_index(day: date) -> int:
    """Day of week with Sunday = 0 .. Saturday = 6."""
    return day.isoweekday() % 7


def previous_weekday(weekday: int) -> int:
    return (weekday + 6) % 7


def previous_month_index(day: date) -> int:
    """Zero-based index of the month before day's month (January -> december = 11)."""
    return (day.month - 2) % 12
