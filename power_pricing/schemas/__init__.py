# Pydantic schemas for API requests and responses
