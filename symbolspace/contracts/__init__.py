"""
Contracts Module

This module defines the explicit data types that form the contracts between
layers. All inter-layer communication MUST use these contracts.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. Degraded outcomes are explicit error values, not exceptions
3. Identity is content-derived and never recomputed once stored
4. Logical time is an integer counter; wall-clock time is audit-only
"""
