"""Pure computation helpers for pipeline stages.

Modules in this package contain ZERO database access.
"""
