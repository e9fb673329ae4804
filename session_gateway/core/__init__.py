"""
Core gateway logic: session lifecycle and message dispatch.
"""
