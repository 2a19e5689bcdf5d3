"""Tests for the operator command line."""
import json
import logging

import pytest
from sqlalchemy import text

from notecottage.main import main, parse_args
from notecottage.storage.database import Database
from notecottage.storage.note_repository import NoteRepository


@pytest.fixture
def cli_args(temp_dir, test_config, monkeypatch):
    """Common arguments pointing the CLI at the test database and log dir."""
    monkeypatch.setattr(test_config, "log_level", test_config.log_level)
    package_logger = logging.getLogger("notecottage")
    before = list(package_logger.handlers)
    yield [
        "--database-path", str(temp_dir / "cli.db"),
        "--log-dir", str(temp_dir / "logs"),
        "--log-level", "WARNING",
    ]
    for handler in package_logger.handlers[:]:
        if handler not in before:
            handler.close()
            package_logger.removeHandler(handler)


def seed(temp_dir, count=2, trash=0):
    with Database(f"sqlite:///{temp_dir / 'cli.db'}") as db:
        notes = NoteRepository(db)
        created = [notes.create(f"Note {i}", f"body {i}") for i in range(count)]
        for note in created[:trash]:
            notes.soft_delete(note.id)


class TestParseArgs:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_parses_options(self):
        args = parse_args(["--database-path", "x.db", "stats"])
        assert args.database_path == "x.db"
        assert args.command == "stats"


class TestCommands:
    def test_init(self, cli_args, temp_dir, capsys):
        assert main(cli_args + ["init"]) == 0
        assert (temp_dir / "cli.db").exists()
        assert "Database ready" in capsys.readouterr().out

    def test_check_index_healthy(self, cli_args, temp_dir, capsys):
        seed(temp_dir)
        assert main(cli_args + ["check-index"]) == 0
        assert "healthy" in capsys.readouterr().out

    def test_check_then_rebuild(self, cli_args, temp_dir, capsys):
        seed(temp_dir)
        with Database(f"sqlite:///{temp_dir / 'cli.db'}") as db:
            with db.transaction() as session:
                session.execute(text("DELETE FROM notes_fts"))

        assert main(cli_args + ["check-index"]) == 1
        assert "rebuild-index" in capsys.readouterr().out
        assert main(cli_args + ["rebuild-index"]) == 0
        assert "2 notes" in capsys.readouterr().out
        assert main(cli_args + ["check-index"]) == 0

    def test_empty_trash(self, cli_args, temp_dir, capsys):
        seed(temp_dir, count=3, trash=2)
        assert main(cli_args + ["empty-trash"]) == 0
        assert "Removed 2 notes" in capsys.readouterr().out

    def test_stats(self, cli_args, temp_dir, capsys):
        seed(temp_dir, count=2, trash=1)
        assert main(cli_args + ["stats"]) == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["total_notes"] == 1
        assert stats["user_count"] == 0
