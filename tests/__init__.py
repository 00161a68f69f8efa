"""
Test suite for the address import backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_column_mapping_service.py -v
"""
