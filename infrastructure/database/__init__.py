"""SQLite persistence: handler, operations mixins and repository facades."""
