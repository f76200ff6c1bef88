# Overview: Permission oracle and lookups over the action definitions.

from flask import current_app
from werkzeug.utils import import_string

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


def get_all_action_codes():
    """Get list of all action codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_actions_by_category(category):
    """Get all actions in a category."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def get_action_definition(code):
    """Get full definition for an action code."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_action_code(code):
    """Check if an action code is valid."""
    return code in get_all_action_codes()


def default_allowed(role, action) -> bool:
    """Default role matrix: unknown roles and unknown actions are denied."""
    if not role:
        return False
    return action in DEFAULT_ROLE_PERMISSIONS.get(role, ())


def _oracle():
    oracle = current_app.config.get("PERMISSION_ORACLE")
    if oracle is None:
        return default_allowed
    if isinstance(oracle, str):
        return import_string(oracle)
    return oracle


def allowed(role, action) -> bool:
    """
    Ask the configured permission oracle whether `role` may perform `action`.

    PERMISSION_ORACLE may be a callable or a dotted import path to one;
    when unset, the default role matrix answers.
    """
    return bool(_oracle()(role, action))
