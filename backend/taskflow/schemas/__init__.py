"""Pydantic/SQLModel schemas for API request and response payloads."""
