"""Pydantic schemas shared by the client core and the host endpoints."""
