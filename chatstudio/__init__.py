"""chatstudio: multi-provider chat with per-session memory."""

__version__ = "0.3.0"
