"""
Utility Module
Caching, memory watchdog, log ingestion and logging setup
"""
