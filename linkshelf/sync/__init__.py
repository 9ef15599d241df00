"""Push/pull reconciliation, sync strategies and the dirty-state ledger."""
