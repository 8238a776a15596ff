"""Backend — Package."""
