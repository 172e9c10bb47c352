"""Caller identity: bearer-token verification and role checks."""
