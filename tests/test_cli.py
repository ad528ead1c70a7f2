"""
Tests for the operator CLI.

Tests cover:
- create / list / delete round trips through main()
- service errors become exit status 1 with an ERROR line
- diagnose exit status reflects the health score
- repair, sync, backfill and cache commands
"""

import pytest

from audio_categories import cli
from audio_categories.services import audio_service


@pytest.fixture(autouse=True)
def _no_app_database(monkeypatch):
    """Keep main() on the test database instead of the configured file."""
    monkeypatch.setattr(cli, "initialize_app_database", lambda: None)


@pytest.fixture
def run(test_db, capsys):
    def _run(*argv):
        code = cli.main(list(argv))
        return code, capsys.readouterr().out

    return _run


class TestCli:
    def test_no_command_prints_help(self, run):
        code, out = run()
        assert code == 1
        assert "usage" in out.lower()

    def test_init_db(self, run):
        assert run("init-db") == (0, "Database initialized\n")

    def test_create_and_list_tree(self, run):
        assert run("create", "Cardiology")[0] == 0
        code, out = run("create", "Arrhythmia", "--parent-id", "1")
        assert code == 0
        assert "(level 2)" in out

        code, out = run("list", "--counts")
        assert code == 0
        assert "- [1] Cardiology (0)" in out
        assert "  - [2] Arrhythmia (0)" in out

    def test_list_flat(self, run):
        run("create", "Cardiology")
        run("create", "Arrhythmia", "--parent-id", "1")
        code, out = run("list", "--format", "flat", "--level", "2")
        assert code == 0
        assert "[2] L2 Arrhythmia parent=1" in out
        assert "1 categories" in out

    def test_duplicate_is_error(self, run):
        run("create", "Surgery")
        code, out = run("create", "Surgery")
        assert code == 1
        assert out.startswith("ERROR: Validation failed")

    def test_delete_modes(self, run):
        run("create", "Cardiology")
        run("create", "Arrhythmia", "--parent-id", "1")

        code, out = run("delete", "1")
        assert code == 1
        assert "use cascade=true" in out

        code, out = run("delete", "1", "--cascade")
        assert code == 0
        assert "Deleted categories: 2, 1" in out

    def test_diagnose_exit_status(self, run):
        run("create", "Cardiology")
        run("create", "Arrhythmia", "--parent-id", "1")
        code, out = run("diagnose")
        assert code == 0
        assert "Health score: 100/100" in out

        run("delete", "1", "--force")
        code, out = run("diagnose")
        assert code == 2
        assert "[fix-structure]" in out

    def test_repair_fix_structure(self, run):
        run("create", "Cardiology")
        run("create", "Arrhythmia", "--parent-id", "1")
        run("delete", "1", "--force")

        code, out = run("repair", "fix-structure")
        assert code == 0
        assert "updated=1" in out

    def test_sync_and_backfill(self, run):
        run("create", "Cardiology")
        synced = audio_service.create_audio("a", "old", category_id=1)
        audio_service.create_audio("b", "cardiology talk")

        code, out = run("sync")
        assert code == 0
        assert "updated=1" in out
        assert audio_service.get_audio(synced.audio_id).subject == "Cardiology"

        code, out = run("backfill")
        assert code == 0
        assert "updated=1" in out

    def test_cache_commands(self, run):
        run("create", "Cardiology")
        code, out = run("cache-warm")
        assert code == 0
        assert "Warmed 6 queries" in out

        code, out = run("cache-benchmark")
        assert code == 0
        assert "Cache efficiency" in out
        assert "hit rate:" in out
