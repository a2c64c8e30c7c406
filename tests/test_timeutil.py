"""Tests for time helpers."""

import re
from datetime import datetime, timedelta, timezone

from databackup.util.timeutil import BACKUP_ID_FORMAT, format_duration, generate_backup_id


class TestBackupId:
    """Test snapshot version generation."""

    def test_format_is_utc(self):
        """Test versions carry the UTC time down to microseconds."""
        backup_id = generate_backup_id()

        assert re.fullmatch(r"\d{8}_\d{6}_\d{6}", backup_id)
        stamp = datetime.strptime(backup_id, BACKUP_ID_FORMAT).replace(tzinfo=timezone.utc)
        assert abs(datetime.now(timezone.utc) - stamp) < timedelta(minutes=1)

    def test_back_to_back_ids_unique_and_ordered(self):
        """Test rapid calls never repeat a version and sort in call order."""
        ids = [generate_backup_id() for _ in range(500)]

        assert len(set(ids)) == len(ids)
        assert ids == sorted(ids)


class TestFormatDuration:
    """Test duration formatting."""

    def test_units(self):
        assert format_duration(12.34) == "12.3s"
        assert format_duration(90) == "1.5m"
        assert format_duration(5400) == "1.5h"
