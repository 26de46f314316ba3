"""Dojo Storm: multi-tenant gym management backend."""
