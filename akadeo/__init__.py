"""Akadeo account lifecycle and subscription billing service."""
