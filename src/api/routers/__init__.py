"""
API Routers package.
"""

from . import badges, queue, jobs, templates, printers

__all__ = ["badges", "queue", "jobs", "templates", "printers"]
