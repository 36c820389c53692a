"""
Platform concerns shared across the package.
"""
