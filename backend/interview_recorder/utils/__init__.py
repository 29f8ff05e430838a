"""
Utilities: structured logging and Prometheus metrics.
"""
