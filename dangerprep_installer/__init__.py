"""DangerPrep appliance installer (Python-first, phase-driven).

Core design goals:
- One installation at a time (system-wide lock)
- Resumable phases with persisted status
- Backup before every overwrite
- Consent-gated, at-most-once NVMe partitioning
- Centralized logging
"""

__version__ = "2.1.0"

__all__ = ["__version__"]
