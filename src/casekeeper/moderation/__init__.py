"""Punishment workflow: entitlement, execution, warnings, case ledger and mod-log."""
