"""
Unit tests for the command line entry point.
"""

import io
import json
import sys
import unittest
from contextlib import redirect_stdout
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch


sys.path.append(str(Path(__file__).parent.parent / "src"))

from road_sync import main as cli
from road_sync.services.sync.errors import RegionBoundaryNotFound
from road_sync.services.sync.models import SyncRunResult, SyncStatus, SyncStatusReport
from road_sync.utils.geo_utils import GeoBox


def make_result():
    return SyncRunResult(
        run_id="OSL-abcdefghij",
        status=SyncStatus.COMPLETED,
        ways_fetched=3,
        segments_created=5,
        segments_replaced=0,
        segments_skipped=1,
        errors=[],
    )


class TestMain(unittest.TestCase):
    def setUp(self):
        self.orchestrator = Mock()
        patcher = patch.object(cli, "build_orchestrator", return_value=self.orchestrator)
        patcher.start()
        self.addCleanup(patcher.stop)

    def run_cli(self, argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = cli.main(argv)
        return code, out.getvalue()

    def test_bbox_command(self):
        self.orchestrator.run_bbox_sync.return_value = make_result()

        code, output = self.run_cli(["bbox", "136.90", "35.15", "136.95", "35.20"])

        self.assertEqual(code, 0)
        bbox, triggered_by, token = self.orchestrator.run_bbox_sync.call_args.args
        self.assertEqual(bbox, GeoBox(136.90, 35.15, 136.95, 35.20))
        self.assertEqual(triggered_by, "cli")
        self.assertIsNone(token)
        self.assertEqual(json.loads(output)["segments_created"], 5)

    def test_region_command_with_deadline(self):
        self.orchestrator.run_region_sync.return_value = make_result()

        code, _ = self.run_cli(["--deadline", "60", "--triggered-by", "ops", "region", "Naka-ku"])

        self.assertEqual(code, 0)
        name, triggered_by, token = self.orchestrator.run_region_sync.call_args.args
        self.assertEqual(name, "Naka-ku")
        self.assertEqual(triggered_by, "ops")
        self.assertIsNotNone(token)

    def test_region_not_found_exit_code(self):
        self.orchestrator.run_region_sync.side_effect = RegionBoundaryNotFound("Atlantis")

        code, output = self.run_cli(["region", "Atlantis"])

        self.assertEqual(code, 1)
        self.assertEqual(output, "")

    def test_status_command(self):
        self.orchestrator.get_sync_status.return_value = SyncStatusReport(
            running_count=1,
            last_completed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            total_synced_asset_count=42,
        )

        code, output = self.run_cli(["status"])

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["total_synced_asset_count"], 42)

    def test_stale_command(self):
        self.orchestrator.sync_stale_regions.return_value = {"Naka-ku": make_result(), "Atlantis": None}

        code, output = self.run_cli(["stale", "--max-age-hours", "12"])

        self.assertEqual(code, 0)
        self.orchestrator.sync_stale_regions.assert_called_once_with(12.0, "cli")
        payload = json.loads(output)
        self.assertIsNone(payload["Atlantis"])
        self.assertEqual(payload["Naka-ku"]["status"], "completed")

    def test_logs_command(self):
        self.orchestrator.list_sync_runs.return_value = ([], 0)

        code, output = self.run_cli(["logs", "--limit", "5"])

        self.assertEqual(code, 0)
        self.orchestrator.list_sync_runs.assert_called_once_with(5, 0)
        self.assertEqual(json.loads(output), {"data": [], "total": 0})


if __name__ == "__main__":
    unittest.main()
