"""Collaborative branching stories with a transactional chapter contribution workflow."""

__version__ = "0.1.0"
