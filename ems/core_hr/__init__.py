"""Core HR module — Employee model consumed by the leave engine."""
