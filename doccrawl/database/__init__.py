"""Package catalog storage: SQLAlchemy models, connections and repositories."""
