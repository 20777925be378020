"""서비스 패키지 — 권한 엔진 로직 계층.

Service package — Authorization engine layer.
Services call repositories for DB operations and read role/permission
definitions through the shared definition cache.
"""
