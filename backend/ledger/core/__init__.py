"""Core configuration: settings and status rules."""
