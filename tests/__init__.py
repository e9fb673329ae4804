"""
Session Gateway Tests

Unit tests run against an in-memory messaging client (see conftest.py);
no bridge, browser or network access is needed.

Running Tests:
    # Run all tests
    pytest tests -v

    # Run one module
    pytest tests/unit/test_lifecycle.py -v

Test Coverage:
    - Session name normalization and resolution
    - Lifecycle state machine and client events
    - Phone numbers, message intents and media download
    - Message dispatch
    - Bridge REST protocol
    - HTTP endpoints and graceful shutdown
"""
