"""
CivicFix
Blueprint registry.

    citizen_bp  - /api/v1/citizen   (open, identity headers)
    admin_bp    - /api/v1/admin     (API key)
    health_bp   - /api/v1/health    (open)
"""
