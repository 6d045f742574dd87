"""Output reporters for test plans."""
