"""
Scoring Module
LLM-backed answer scoring and interview feedback.
"""
