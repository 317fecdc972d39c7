from __future__ import annotations

import json

from storefront.cli import main
from storefront.core.security import verify_access_token
from storefront.reconciliation.journal import ReconciliationJournal


def test_token_command_mints_verifiable_token(capsys):
    assert main(["token", "ops", "--role", "admin"]) == 0
    actor = verify_access_token(capsys.readouterr().out.strip())
    assert (actor.id, actor.role) == ("ops", "admin")


def test_reconciliation_command_reports_pending_entries(capsys, journal_path):
    assert main(["reconciliation"]) == 0
    assert "no pending compensations" in capsys.readouterr().out
    assert main(["reconciliation", "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == []

    ReconciliationJournal().record("cancel_release", "ORD-20260101-AAAAAAAAAAAA", "p1", 2, RuntimeError("db gone"))

    assert main(["reconciliation"]) == 1
    assert "cancel_release ORD-20260101-AAAAAAAAAAAA product=p1 qty=2" in capsys.readouterr().out

    assert main(["reconciliation", "--json"]) == 1
    entries = json.loads(capsys.readouterr().out)
    assert entries[0]["error"] == "RuntimeError: db gone"
