"""Tests for the maintenance CLI."""

from backoffice import manage_db
from backoffice.app_context import login_guard


def test_create_admin_then_duplicate(db_tables, capsys):
    assert manage_db.main(["create-admin", "ops@genride.test", "long-enough", "--name", "Ops"]) == 0
    assert "Created admin ops@genride.test" in capsys.readouterr().out

    assert manage_db.main(["create-admin", "OPS@genride.test", "long-enough"]) == 1
    assert "already exists" in capsys.readouterr().err


def test_create_admin_rejects_short_password(db_tables, capsys):
    assert manage_db.main(["create-admin", "ops@genride.test", "123"]) == 2
    assert "at least 6" in capsys.readouterr().err


def test_lockouts_listing_and_reset(db_tables, capsys):
    key = login_guard.lockout_key("victim@genride.test")
    for _ in range(3):
        login_guard.record_failure(key)

    assert manage_db.main(["lockouts"]) == 0
    out = capsys.readouterr().out
    assert key in out
    assert "x2" in out

    assert manage_db.main(["reset-lockout", "victim@genride.test"]) == 0
    assert not login_guard.is_locked_out(key)

    manage_db.main(["lockouts"])
    assert "No active lockouts." in capsys.readouterr().out
