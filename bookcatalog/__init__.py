"""Book catalog REST service."""
