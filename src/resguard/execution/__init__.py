"""Execution control: scoped resources, locking, budgets and rate limits."""
