"""Command authorization gateway with a credit ledger and two-approver review."""
