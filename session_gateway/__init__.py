"""
OIDC Session Gateway

Relying-party session management against a single OpenID Connect identity
provider: silent access-token refresh and CSRF-protected logout.
"""

__version__ = "1.0.0"
