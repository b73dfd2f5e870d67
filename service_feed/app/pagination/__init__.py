"""
Pagination package.

Converts a list request into exactly one retrieval strategy (offset or
cursor) against the store adapter and normalizes the result envelope.
"""
