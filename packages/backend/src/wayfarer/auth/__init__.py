"""Authentication and authorization.

Learn: Users authenticate with email/password and receive a short-lived
JWT access token plus a longer-lived refresh token. The refresh token is
also stored (as a digest) so it can be rotated and revoked; the access
token never touches the database.

The verified access token becomes a Principal, and the Principal is what
gets bound onto database connections for row-level security.
"""
