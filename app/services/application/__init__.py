"""Application services wired by ServiceContainer."""
