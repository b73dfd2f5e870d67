"""
Persistence package for Feed Service.

Describes the relational entities the feed reads and writes and provides
an asyncpg-backed adapter with generic find/count/create/update/delete
operations.
"""
