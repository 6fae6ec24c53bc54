"""Shared building blocks for the microfeed packages."""
