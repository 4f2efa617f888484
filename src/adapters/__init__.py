"""Adapters: concrete I/O implementations of the core contracts."""
