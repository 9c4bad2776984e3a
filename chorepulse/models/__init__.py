"""
Gemini-backed language features.
"""
