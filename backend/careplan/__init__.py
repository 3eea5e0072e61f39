"""Care plan medication scheduling service."""
