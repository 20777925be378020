"""RBAC 권한 엔진 패키지.

Role-based access control engine: permission catalog, role graph,
assignment store, permission resolver and scope evaluation, with a thin
FastAPI admin surface.
"""
