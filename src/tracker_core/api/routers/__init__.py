"""API routers for Tracker Core."""

from . import auth, projects, roadmap_templates, teams, users, work_items

__all__ = ["auth", "projects", "roadmap_templates", "teams", "users", "work_items"]
