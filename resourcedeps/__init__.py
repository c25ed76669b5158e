"""resourcedeps - Dependency graph service for marketplace resources."""

__version__ = "0.1.0"
