"""
Client Portal
Blueprint registry.

    health_bp          /api/v1/health/*
    project_status_bp  /api/v1/projects/<id>/status|substatus|clarifications|health,
                       /api/v1/clarifications/<id>/respond, /api/v1/status-types
"""
