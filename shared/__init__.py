"""
Shared utilities for Tile Rules.

This package aggregates the ambient building blocks consumed by the
rule evaluator and its hosts:

- config: Evaluator configuration via pydantic-settings
- logging: Structured JSON logging with caller correlation fields
- errors: Canonical error types and responses
- test_helpers: Context and condition factories for test suites

Only test_helpers imports from tile_rules; nothing else in shared/ may.
"""
