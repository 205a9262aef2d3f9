"""
Utility modules for the email conversion pipeline.
"""
