"""Client for a remote catalog of installable agent documents."""

from __future__ import annotations

__version__ = "0.1.0"
