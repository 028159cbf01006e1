# eventflow/auth/__init__.py
"""
Authentication modules for EventFlow.

This package contains:
- identity.py: Canonical authenticated identity model built from access-token claims
"""
from eventflow.auth.identity import Identity

__all__ = ["Identity"]
