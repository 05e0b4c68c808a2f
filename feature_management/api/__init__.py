"""HTTP integration."""
