"""HTTP surface for orderflow."""
