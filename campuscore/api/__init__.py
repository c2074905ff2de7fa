"""HTTP routers and FastAPI dependencies."""
