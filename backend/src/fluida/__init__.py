"""
Fluida - invoice management with on-chain payment detection.
"""

__version__ = "1.0.0"
