"""Service layer for FileFerry."""
