"""Módulo de autenticación por secreto compartido.

- Publisher secret (escrituras de track, fail-open)
- Admin secret (comandos y flag de config, fail-closed)
- Webhook Bearer token
"""

from .publisher_secret import (
    require_admin_secret,
    require_publisher_secret,
    require_webhook_secret,
)

__all__ = [
    "require_admin_secret",
    "require_publisher_secret",
    "require_webhook_secret",
]
