"""Key-custody service client."""
