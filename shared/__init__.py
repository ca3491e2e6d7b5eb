"""
Shared infrastructure for the relay hub: settings and logging.
"""
