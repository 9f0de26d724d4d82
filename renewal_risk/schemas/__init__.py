"""
schemas/ — Pydantic request/response models for the renewal risk API

Provides input validation, auto-generated OpenAPI docs, and
consistent error messages across the notification and risk endpoints.
"""
