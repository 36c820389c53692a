"""
Application services: reconciliation, license codes and webhook dispatch.
"""
