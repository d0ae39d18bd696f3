"""
Evidence Fusion Engine Test Suite

Tests are organized by category:
- unit: Unit tests for individual components
- integration: Integration tests for component interactions
"""
