"""Security — audit trail and outbound webhook delivery."""
