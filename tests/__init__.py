"""
Test suite for Semantic Atlas.

This package contains all tests organized by component:
- test_algorithms/: Tests for clustering, refinement, projection, layout and geometry
- test_utils/: Tests for logging and text helpers
"""
