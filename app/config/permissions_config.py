"""
Permissions and Roles Configuration
This config defines the permission matrix for all resources and the default roles.
Used by the seed script and RoleService.initialize_defaults to populate roles and permissions.
"""

# Define resources and their actions
MODULES = {
    "users": {
        "resource": "users",
        "actions": ["view", "create", "edit", "delete", "assign_roles"],
        "description": "User management"
    },
    "roles": {
        "resource": "roles",
        "actions": ["view", "create", "edit", "delete", "assign_permissions"],
        "description": "Role and permission management"
    },
    "datasets": {
        "resource": "datasets",
        "actions": ["view", "create", "edit", "delete", "manage_access"],
        "description": "Dataset management"
    },
    "documents": {
        "resource": "documents",
        "actions": ["view", "create", "edit", "delete", "manage_access"],
        "description": "Document management"
    },
    "system": {
        "resource": "system",
        "actions": ["admin", "view_logs", "configure"],
        "description": "System administration"
    }
}

SUPER_ADMIN_ROLE = "super_admin"
ADMIN_ROLE = "admin"
ADMIN_ROLES = (ADMIN_ROLE, SUPER_ADMIN_ROLE)

# Default roles; "*" expands to every permission in the matrix
DEFAULT_ROLES = {
    SUPER_ADMIN_ROLE: {
        "permissions": ["*"],
        "exclude": [],
        "description": "Full system access"
    },
    ADMIN_ROLE: {
        "permissions": ["*"],
        "exclude": ["system.configure"],
        "description": "Administrative access excluding system configuration"
    },
    "manager": {
        "permissions": [
            "users.view",
            "datasets.view", "datasets.create", "datasets.edit", "datasets.manage_access",
            "documents.view", "documents.create", "documents.edit", "documents.manage_access",
        ],
        "exclude": [],
        "description": "User and content management"
    },
    "user": {
        "permissions": ["datasets.view", "documents.view", "documents.create"],
        "exclude": [],
        "description": "Basic access"
    },
    "guest": {
        "permissions": ["datasets.view", "documents.view"],
        "exclude": [],
        "description": "Read-only access"
    }
}

# Additional descriptions for specific permissions
MODULE_SPECIFIC_PERMISSIONS = {
    "users": {
        "assign_roles": "Assign roles to users"
    },
    "roles": {
        "assign_permissions": "Assign permissions to roles"
    },
    "datasets": {
        "manage_access": "Grant and revoke dataset access"
    },
    "documents": {
        "manage_access": "Grant and revoke document access"
    },
    "system": {
        "admin": "System administration",
        "view_logs": "View system logs",
        "configure": "Change system configuration"
    }
}


def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the default roles
    Format: {
        "permissions": [
            {"name": "users.create", "resource": "users", "action": "create", "description": "..."},
            ...
        ],
        "roles": [
            {
                "name": "admin",
                "description": "...",
                "permissions": ["datasets.create", "datasets.delete", ...]
            },
            ...
        ]
    }
    """
    permissions = []
    roles = []

    for module_name, module_config in MODULES.items():
        resource = module_config["resource"]

        for action in module_config["actions"]:
            description = f"{action.capitalize()} {resource}"
            if module_name in MODULE_SPECIFIC_PERMISSIONS and action in MODULE_SPECIFIC_PERMISSIONS[module_name]:
                description = MODULE_SPECIFIC_PERMISSIONS[module_name][action]

            permissions.append({
                "name": f"{resource}.{action}",
                "resource": resource,
                "action": action,
                "description": description
            })

    all_names = [p["name"] for p in permissions]

    for role_name, role_config in DEFAULT_ROLES.items():
        if "*" in role_config["permissions"]:
            role_permissions = list(all_names)
        else:
            role_permissions = [p for p in role_config["permissions"] if p in all_names]
        role_permissions = [p for p in role_permissions if p not in role_config["exclude"]]

        roles.append({
            "name": role_name,
            "description": role_config["description"],
            "permissions": sorted(role_permissions)
        })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
SEEDED_PERMISSION_NAMES = [p["name"] for p in PERMISSION_MATRIX["permissions"]]
