"""Marketplace notification dispatch and delivery service."""
