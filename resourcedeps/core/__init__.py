"""Core domain logic for resourcedeps."""
