# backend/studysphere/__init__.py
"""StudySphere course-management backend."""

__version__ = "0.1.0"
