"""FastAPI application for Tracker Core."""
