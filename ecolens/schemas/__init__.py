"""
Schemas package - Pydantic records and request/response models
"""
