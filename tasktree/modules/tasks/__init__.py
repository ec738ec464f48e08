"""Task operations: lifecycle transitions, composition, analytics, and the async service."""
