"""Built-in upload adapters and storage resolution."""
