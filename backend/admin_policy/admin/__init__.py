"""
Admin module: permission guards for the administration API.

Every administration endpoint depends on `require_admin_permission`, which
resolves the calling admin's grant through the Permission Resolver.
"""

from .dependencies import require_admin_permission

__all__ = ["require_admin_permission"]
