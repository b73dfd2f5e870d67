"""
Per-resource orchestration: posts, saved posts and the user directory.
"""
