"""
HTTP API

FastAPI surface over a single SymbolRuntime. See server.py.
"""
