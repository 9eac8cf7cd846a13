"""
Test API Package
Endpoint tests for the FastAPI routers
"""
