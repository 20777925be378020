"""API 패키지 — 인증 의존성과 RBAC 관리 라우터."""
