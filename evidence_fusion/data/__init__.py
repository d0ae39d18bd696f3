"""
Data access for the fusion engine: providers, caching and indicator validation.
"""
