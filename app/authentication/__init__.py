"""
Authentication application.

Marketplace identities: email-based User with a role (client, freelancer,
admin), account status and freelancer verification, plus a Profile that
holds freelancer availability limits.

Usage:
    from authentication.models import User, UserRole
"""
