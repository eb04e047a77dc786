"""
Core infrastructure: settings, logging, cache, errors.
"""
