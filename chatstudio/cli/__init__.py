"""CLI module for chatstudio."""
