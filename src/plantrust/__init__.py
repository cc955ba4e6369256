"""Trust scoring, consensus and import reconciliation for provider/plan acceptance data."""
