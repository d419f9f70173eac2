"""
api package: FastAPI routers for the chat and health endpoints.
"""
