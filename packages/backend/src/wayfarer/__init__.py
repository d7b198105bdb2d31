"""Wayfarer — multi-tenant trip planning backend.

The identity core lives here: password hashing, access/refresh token
issuance and rotation, password reset flows, and binding the
authenticated account onto every database connection so row-level
security isolates tenants inside the database itself.
"""

__version__ = "0.1.0"
