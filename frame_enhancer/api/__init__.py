"""
HTTP service exposing the frame preprocessing pipeline
"""
