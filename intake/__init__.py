"""Intake — submission intake and moderation pipeline for site forms and comments."""

__version__ = "0.1.0"
