"""Shared helpers with no dependency on the web or billing layers."""
