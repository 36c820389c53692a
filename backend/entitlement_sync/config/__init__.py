"""
Configuration: environment settings and the packaged tier catalog.
"""
