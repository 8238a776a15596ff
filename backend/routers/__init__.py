"""Backend Routers — Package."""
