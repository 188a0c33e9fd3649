"""
Domain package - Core business logic with no external dependencies.

This package contains pure Python domain models, amount conversion and
payment matching rules for invoices settled in SPL tokens.
"""
