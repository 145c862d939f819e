from datetime import date

from click.testing import CliRunner
from sqlalchemy import text

from relstore import cli
from relstore.migrations import auth
from relstore.migrations.catalog import Migration, MigrationCatalog
from relstore.migrations.engine import MigrationEngine

NO_DATABASE = {"DATABASE_URL": None}


def test_prints_pending_sql_without_database():
    result = CliRunner().invoke(cli.migrate, ["auth", "cache"], env=NO_DATABASE)

    assert result.exit_code == 0, result.output
    assert 'CREATE TABLE IF NOT EXISTS "user"' in result.output
    assert "CREATE UNLOGGED TABLE IF NOT EXISTS cache" in result.output
    assert result.output.index("-- auth") < result.output.index("-- cache")


def test_unknown_module_is_a_usage_error():
    result = CliRunner().invoke(cli.migrate, ["billing"], env=NO_DATABASE)
    assert result.exit_code == 2


def test_module_is_required():
    result = CliRunner().invoke(cli.migrate, [], env=NO_DATABASE)
    assert result.exit_code == 2


def test_apply_then_print_nothing(db_url):
    runner = CliRunner()

    applied = runner.invoke(cli.migrate, [f"--addr={db_url}", "--apply", "auth", "cache"])
    assert applied.exit_code == 0, applied.output
    assert "auth: migrated to 2024-06-12" in applied.output
    assert "cache: migrated to 2024-09-20" in applied.output

    again = runner.invoke(cli.migrate, [f"--addr={db_url}", "--apply", "auth"])
    assert again.exit_code == 0, again.output
    assert "auth: already at 2024-06-12" in again.output

    printed = runner.invoke(cli.migrate, [f"--addr={db_url}", "auth", "cache"])
    assert printed.exit_code == 0, printed.output
    assert "CREATE" not in printed.output


def test_addr_from_environment(db_url):
    result = CliRunner().invoke(cli.migrate, ["--apply", "cache"], env={"DATABASE_URL": db_url})
    assert result.exit_code == 0, result.output
    assert "cache: migrated to 2024-09-20" in result.output


def test_failed_module_exits_non_zero(db_url, monkeypatch):
    broken = Migration(module="auth", tag=date(2024, 6, 12), name="broken", statements=(text("NOT SQL AT ALL"),))
    catalog = MigrationCatalog([auth.MIGRATIONS[0], broken])
    monkeypatch.setattr(cli, "MigrationEngine", lambda: MigrationEngine(catalog))

    result = CliRunner().invoke(cli.migrate, [f"--addr={db_url}", "--apply", "auth"])

    assert result.exit_code == 1
    assert "auth: FAILED at 2024-06-12" in result.output
    assert "last successful version 2024-03-05" in result.output


def test_unreachable_database_in_print_mode_exits_non_zero(tmp_path):
    addr = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'db.sqlite'}"

    result = CliRunner().invoke(cli.migrate, [f"--addr={addr}", "auth", "cache"])

    assert result.exit_code == 1
    assert "auth: cannot read installed version" in result.output
    assert "cache: cannot read installed version" in result.output
    assert "CREATE" not in result.output
