"""
API package - HTTP routes and request/response schemas.
"""
