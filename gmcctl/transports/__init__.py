"""Transport implementations."""
