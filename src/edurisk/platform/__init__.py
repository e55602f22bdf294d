"""
EduRisk Platform - audit trail and compliance analytics for the dropout-risk system.

Subpackages:
- audit: event recording, querying, statistics, anomaly detection and retention
"""

__version__ = "1.0.0"


def get_version() -> str:
    """Get platform version."""
    return __version__
