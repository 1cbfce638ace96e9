"""
Badge print queue.

Operators submit badge print jobs against a template; jobs are rendered and
sent to a single printer one at a time, with a live status feed.
"""

__version__ = "1.0.0"
