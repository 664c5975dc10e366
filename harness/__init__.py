"""
Harness Module

Cycle driver and CLI for soak-testing the hash store.

This module provides:
- Seeded random key generation
- Time- or count-bounded lookup/save cycles with progress reporting
- YAML-based configuration
- Logging to stdout and an append-only log file
"""

__version__ = "0.1.0"
