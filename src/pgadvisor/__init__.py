"""
PostgreSQL Configuration Advisor - hardware-aware postgresql.conf tuning.

Inspects the host (CPU cores, RAM, disk medium) and the installed PostgreSQL
engine, generates a recommended configuration and reconciles it against the
existing file through backup, diff and opt-in replacement.
"""

__version__ = "1.0.0"
__author__ = "pgadvisor Team"
