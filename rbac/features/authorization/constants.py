# Policy identifiers look like "Rbac:Orders.Read,Orders.Write"
PERMISSIONS_POLICY_PREFIX = "Rbac"
POLICY_SEPARATOR = ":"
PERMISSION_DELIMITER = ","

# Claim type carrying one held permission name
PERMISSION_CLAIM_TYPE = "permission"
