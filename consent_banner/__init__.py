"""Cookie consent banner — visitor-side consent state and host endpoints."""
