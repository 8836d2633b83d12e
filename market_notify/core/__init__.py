"""Core domain logic: security and notification delivery strategy."""
