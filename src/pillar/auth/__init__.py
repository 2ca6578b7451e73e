"""Authentication and authorization.

Learn: Sessions are issued by the external auth provider; this package
only verifies them. Two authentication paths:
1. Users → JWT (Authorization: Bearer, or the session cookie for
   browsers — EventSource can't set headers)
2. Scripts/integrations → personal access token in X-API-Key

Both resolve to a "current identity" for owner scoping.
"""
