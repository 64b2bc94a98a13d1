"""
Core business logic for coaching.

This package is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. Persistence is reached only through the
RelationalStore protocol, so the program matrix, calendar and lifecycle
rules can be tested in isolation.
"""
