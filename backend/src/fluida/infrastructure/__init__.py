"""
Infrastructure package - Database access and persistence adapters.
"""
