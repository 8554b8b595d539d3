"""
Cidery Kernel - production tracking compliance core

Volume-conservation guards and TTB reconciliation for small cideries:
- Typed validation errors with user-facing messages
- Append-only reconciliation records
- Period snapshot chaining with one-way finalization
- Structured logging
"""

__version__ = "0.1.0"
