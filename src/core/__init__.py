"""
Core business logic for the bat-speed training program.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. The phase state machine, stats engine and
medal rules can be tested in isolation from storage and HTTP.
"""
