"""
Storage Modules
"""
