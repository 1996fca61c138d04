"""
Permission-based authorization.

Turns declared permission lists into policy identifiers
("Rbac:Orders.Read,Orders.Write"), parses them back into requirements and
evaluates those requirements against a principal's permission claims.
"""
