"""Test suite for CellType-RefMatch.

Test organization:
- fixtures/: Synthetic reference and query generators
- unit/: Unit tests for individual modules and the CLI

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short -m "not slow"
"""
