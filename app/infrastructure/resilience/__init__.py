"""Resilience components for idempotent processing.

- retry: backoff scheduling and the background retry sweep
- dead_letter: terminal failures and the operator surface over them
"""
