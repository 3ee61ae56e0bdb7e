"""ORM models and async session management."""
