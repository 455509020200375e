"""
Core business logic for coach assignment.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns, so the resolver can be tested against
plain fakes.
"""
