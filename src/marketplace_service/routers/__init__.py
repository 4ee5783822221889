"""API routers."""

from marketplace_service.routers import accounts, admin, evaluations, health, payments, tasks

__all__ = ["accounts", "admin", "evaluations", "health", "payments", "tasks"]
