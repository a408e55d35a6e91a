"""FastAPI mocks of the remote store and the courier APIs, for development and tests."""
