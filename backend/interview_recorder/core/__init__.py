"""
Core module: constants, policies, errors, data models and question ordering.
"""
