"""Moderation: spam classification, blocklist, rate and duplicate signals, status transitions."""
