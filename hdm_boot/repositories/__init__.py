"""Data access: SQLAlchemy repositories and the file-based article store."""
