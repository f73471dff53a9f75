"""
Domain helpers shared across layers (JSON encoding).
"""
