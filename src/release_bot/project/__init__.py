"""Local project files."""
