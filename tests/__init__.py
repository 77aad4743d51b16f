"""
Test Suite

This module contains all tests for the approval engine.

Structure:
    tests/
    ├── __init__.py            # This file
    ├── conftest.py            # Pytest fixtures
    └── unit/                  # Unit tests
        ├── test_engine/       # Engine and engine component tests
        ├── test_services/     # Service and collaborator tests
        ├── test_repositories/ # In-memory and MongoDB repository tests
        ├── test_scheduler/    # Sweep scheduler tests
        └── test_utils/        # Utility and domain model tests

To run tests:
    pytest tests/
    pytest tests/unit/test_engine/
"""
