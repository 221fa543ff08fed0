"""
Snapshot rotation engine.

Each run reuses the daily slot for today's weekday: the week-old snapshot is
evicted, yesterday's snapshot is hardlink-cloned into the slot and the data
mover refreshes the clone from the source, so only changed files take new
space. On Sundays the weekly ring shifts and takes a clone of Saturday; on the
first of the month last month's calendar slot takes a clone of yesterday.

There is no rollback. A failure mid-rotation leaves the tier as it is and the
next successful run repairs it.
"""

import logging
from datetime import datetime
from typing import Optional

from .filesystem import Filesystem
from .sync import SyncPort
from .tiers import TierLayout, weekday_index, previous_weekday, previous_month_index


logger = logging.getLogger(__name__)


class RotationEngine:
    """
    Rotates the daily, weekly and monthly tiers under one destination root.
    """

    def __init__(self, filesystem: Filesystem, sync: SyncPort, settings, layout: Optional[TierLayout] = None):
        """
        Initialize rotation engine.

        Args:
            filesystem: Backend for the destination tree
            sync: Port used to refresh the daily slot
            settings: BackupSettings of the job
            layout: Tier layout, defaults to the standard tiers under the destination path
        """
        self.filesystem = filesystem
        self.sync = sync
        self.settings = settings
        self.destination = settings.destination_location
        self.layout = layout or TierLayout(self.destination.path)

    def ensure_tier_roots(self):
        logger.info("Checking for missing base level directories")
        for tier in self.layout.tiers:
            self.filesystem.mkdir(self.layout.tier_root(tier))

    def rotate_daily(self, now: datetime) -> str:
        """
        Replace today's daily slot with a fresh snapshot of the source.

        Args:
            now: Time of the run

        Returns:
            Path of the refreshed daily slot

        Raises:
            FilesystemError: If evicting or cloning the slot fails
            SyncError: If the data mover fails
        """
        daily = self.layout.daily
        weekday = weekday_index(now)
        today = self.layout.slot_path(daily, weekday)
        yesterday = self.layout.slot_path(daily, previous_weekday(weekday))

        logger.info(f"Removing old daily snapshot {today}")
        self.filesystem.remove_tree(today)

        logger.info(f"Creating hard linked snapshot {daily.slot(previous_weekday(weekday))} => {daily.slot(weekday)}")
        self.filesystem.hardlink_clone(yesterday, today)

        sources = [location.qualified() for location in self.settings.source_locations]
        self.sync.sync(sources, self.destination.qualified(today), self.settings.excludes)

        logger.info(f"Updating the mtime on {today}")
        self.filesystem.touch(today)

        target = self.layout.latest_target(weekday)
        logger.info(f"Pointing '{self.layout.latest_path}' to '{target}'")
        self.filesystem.symlink(target, self.layout.latest_path)

        return today

    def is_weekly_due(self, now: datetime) -> bool:
        return weekday_index(now) == 0

    def is_monthly_due(self, now: datetime) -> bool:
        return now.day == 1

    def rotate_weekly(self, now: datetime) -> bool:
        """
        Shift the weekly ring and snapshot Saturday into its head. Sundays only.

        Returns:
            True if the rotation ran
        """
        if not self.is_weekly_due(now):
            logger.info("Weekly snapshot is only created on Sunday, skipping")
            return False

        weekly = self.layout.weekly
        slots = self.layout.slot_paths(weekly)

        logger.info("Checking for missing weekly directories")
        for slot in slots:
            self.filesystem.mkdir(slot)

        logger.info(f"Removing oldest weekly snapshot {slots[-1]}")
        self.filesystem.remove_tree(slots[-1])

        logger.info("Rotating weekly snapshot directories")
        for index in range(len(slots) - 2, -1, -1):
            self.filesystem.move_dir(slots[index], slots[index + 1])

        saturday = previous_weekday(weekday_index(now))
        logger.info(f"Snapshotting {self.layout.daily.slot(saturday)} => {weekly.slot(0)}")
        self.filesystem.hardlink_clone(self.layout.slot_path(self.layout.daily, saturday), slots[0])
        return True

    def rotate_monthly(self, now: datetime) -> Optional[str]:
        """
        Snapshot the last day of the previous month into that month's slot.
        First day of the month only.

        Returns:
            Name of the monthly slot written, or None when not due
        """
        if not self.is_monthly_due(now):
            logger.info("Monthly snapshot is only created on the first day of the month, skipping")
            return None

        monthly = self.layout.monthly
        month = previous_month_index(now)
        slot = self.layout.slot_path(monthly, month)

        logger.info(f"Creating monthly snapshot for {monthly.slot_names[month]}")
        logger.info("Checking for missing monthly directories")
        for path in self.layout.slot_paths(monthly):
            self.filesystem.mkdir(path)

        logger.info(f"Removing prior snapshot for last month: {monthly.slot(month)}")
        self.filesystem.remove_tree(slot)

        yesterday = previous_weekday(weekday_index(now))
        logger.info(f"Snapshotting {self.layout.daily.slot(yesterday)} => {monthly.slot(month)}")
        self.filesystem.hardlink_clone(self.layout.slot_path(self.layout.daily, yesterday), slot)
        return monthly.slot_names[month]
