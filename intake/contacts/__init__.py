"""Contacts — deduplicated identity records shared through form submissions."""
