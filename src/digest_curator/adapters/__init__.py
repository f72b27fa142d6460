"""Adapters implementing core interfaces."""
