"""
FastAPI routers for the facility import service.

``facility_imports`` serves the bulk upload flow; ``app.main`` registers it.
"""
