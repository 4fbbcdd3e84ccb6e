"""Tests for the command-line sync."""

import json
from unittest.mock import patch

from scripts import sync_performance
from scripts.lib.errors import ConfigError


def _printed_rows(out):
    """The indented JSON list printed by --dry-run, ignoring log lines."""
    lines = out.splitlines()
    start = lines.index("[")
    end = lines.index("]", start)
    return json.loads("\n".join(lines[start:end + 1]))


class TestSyncCli:
    def test_missing_config_exits_2(self):
        with patch.object(sync_performance.Settings, "from_env",
                          side_effect=ConfigError("SUPABASE_URL must be set")):
            assert sync_performance.main([]) == 2

    def test_dry_run_prints_rows(self, settings, make_source, sample_prospections, capsys):
        source = make_source(sample_prospections)
        with patch.object(sync_performance.Settings, "from_env", return_value=settings), \
                patch.object(sync_performance, "GrowthstationClient", return_value=source), \
                patch.object(sync_performance, "get_client") as get_client:
            assert sync_performance.main(["--dry-run"]) == 0

        rows = _printed_rows(capsys.readouterr().out)
        assert {r["userId"] for r in rows} == {"u-ana", "u-bruno"}
        get_client.assert_not_called()

    def test_sync_with_overrides(self, settings, make_source, fake_db, tmp_path):
        ref = {"firstName": "Joao", "lastName": "Silva"}
        source = make_source([{"responsible": ref, "status": "ACTIVE"}])
        overrides = tmp_path / "rows.json"
        overrides.write_text(json.dumps([{"userId": None, "nome": "Joao Silva", "calls": 50}]))

        with patch.object(sync_performance.Settings, "from_env", return_value=settings), \
                patch.object(sync_performance, "GrowthstationClient", return_value=source), \
                patch.object(sync_performance, "get_client", return_value=fake_db):
            code = sync_performance.main(["--date", "2024-03-01", "--overrides", str(overrides)])

        assert code == 0
        [row] = fake_db.rows()
        assert (row["user_id"], row["date"], row["calls"]) == ("joao_silva", "2024-03-01", 50.0)

    def test_upstream_failure_exits_1(self, settings, make_source):
        source = make_source(error=ConfigError("unexpected"))
        with patch.object(sync_performance.Settings, "from_env", return_value=settings), \
                patch.object(sync_performance, "GrowthstationClient", return_value=source), \
                patch.object(sync_performance, "get_client"):
            assert sync_performance.main([]) == 1

    def test_missing_overrides_file_exits_2(self, settings, tmp_path):
        with patch.object(sync_performance.Settings, "from_env", return_value=settings), \
                patch.object(sync_performance, "GrowthstationClient") as client_cls:
            assert sync_performance.main(["--overrides", str(tmp_path / "nope.json")]) == 2
        client_cls.assert_not_called()

    def test_malformed_overrides_file_exits_2(self, settings, tmp_path):
        bad = tmp_path / "rows.json"
        bad.write_text("{not json")
        not_rows = tmp_path / "object.json"
        not_rows.write_text(json.dumps({"calls": 5}))
        with patch.object(sync_performance.Settings, "from_env", return_value=settings), \
                patch.object(sync_performance, "GrowthstationClient") as client_cls:
            assert sync_performance.main(["--overrides", str(bad)]) == 2
            assert sync_performance.main(["--overrides", str(not_rows)]) == 2
        client_cls.assert_not_called()
