"""
Audit trail read API.
"""
