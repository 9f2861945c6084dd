"""Tracker Core - teams, projects and work items with role-based access control."""

__version__ = "1.0.0"
