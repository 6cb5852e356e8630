"""
Authentication and authorization.

- passwords:    credential hashing
- principal:    who a token says the caller is, and the claim codec
- jwt:          token issue/verify
- verification: emailed one-time codes
- middleware:   bearer token check, attaches AuthContext
- policies:     route dependencies (require_auth, require_role)
"""
