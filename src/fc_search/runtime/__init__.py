"""Process runtime helpers."""
