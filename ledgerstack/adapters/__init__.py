"""Adapters — the only code that talks to docker and other external tools."""
