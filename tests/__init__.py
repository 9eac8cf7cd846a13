"""
CareCadence Test Suite
======================

This package contains all tests for the CareCadence reminder and adherence engine.

Test Structure:
- test_tools/: Time-of-day, schedule registry and notification tests
- test_actions/: Reminder evaluation and dose state tests
- test_services/: Occurrence log, adherence, persistence and engine tests
- test_api/: API endpoint tests for FastAPI routes
- test_scripts/: Simulation script tests
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "api"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite://"

# Common test data
SAMPLE_MEDICINES = [
    {"name": "Metformin", "dosage": "500mg", "times": ["08:00", "20:00"]},
    {"name": "Lisinopril", "dosage": "10mg", "times": ["09:00"]},
    {"name": "Atorvastatin", "dosage": "20mg", "times": ["21:30"]},
]

__all__ = [
    "TEST_DATABASE_URL",
    "SAMPLE_MEDICINES",
]
