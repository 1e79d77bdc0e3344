"""API routers for techpress."""
