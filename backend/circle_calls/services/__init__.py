"""Business Logic Services.

Service Categories:
- Call: call session state, roster transitions, record stores
- Auth: bearer token issue/verification for the opaque user identity
"""
