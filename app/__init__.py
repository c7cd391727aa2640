"""Student Performance Dashboard backend."""
