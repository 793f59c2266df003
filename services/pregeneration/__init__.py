"""Look-ahead audio pre-generation for upcoming slides."""
