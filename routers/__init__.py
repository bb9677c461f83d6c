"""HTTP routers for the webhook service."""
