"""
Database package for Rentguard.

Provides the SQLite-backed stores that outlive a single moderation call.

Public API:
    - ConnectionManager: single long-lived aiosqlite connection
    - SchemaManager: table and index creation
    - AuditLedger: append-only moderation history
    - ReviewQueue: items awaiting human review
"""
