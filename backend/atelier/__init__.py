"""Maison Cléo production tracking backend."""
