"""Core configuration and scheduling clock."""
