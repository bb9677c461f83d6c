"""Persistence helpers shared by the billing and HTTP layers."""
