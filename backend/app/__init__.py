"""Tenant billing engine application package."""
