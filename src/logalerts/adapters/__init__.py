"""Adapters connecting the engine to logging frameworks and chat transports."""
