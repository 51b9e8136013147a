"""Relational persistence for project and job specifications."""
