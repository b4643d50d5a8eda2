"""Domain logic: authentication, access gate, registration and retrieval flows."""
