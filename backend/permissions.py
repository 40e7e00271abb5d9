"""Calendar capability scopes and the single ownership/scope check used by reminder routes."""

from backend.errors import PermissionDeniedError

CAL_READ = 'cal:read'
CAL_ADD_USER = 'cal:add:user'
CAL_ADD_GLOBAL = 'cal:add:global'
CAL_EDIT_USER = 'cal:edit:user'
CAL_EDIT_GLOBAL = 'cal:edit:global'
CAL_DELETE_USER = 'cal:delete:user'
CAL_DELETE_GLOBAL = 'cal:delete:global'

CALENDAR_SCOPES = (
    CAL_READ,
    CAL_ADD_USER,
    CAL_ADD_GLOBAL,
    CAL_EDIT_USER,
    CAL_EDIT_GLOBAL,
    CAL_DELETE_USER,
    CAL_DELETE_GLOBAL,
)

_ACTION_CAPABILITIES = {
    'add': ('canAddUser', 'canAddGlobal'),
    'edit': ('canEditUser', 'canEditGlobal'),
    'delete': ('canDeleteUser', 'canDeleteGlobal'),
}


def calendar_permissions(scopes):
    scopes = set(scopes or ())
    return {
        'canRead': CAL_READ in scopes,
        'canAddUser': CAL_ADD_USER in scopes,
        'canAddGlobal': CAL_ADD_GLOBAL in scopes,
        'canEditUser': CAL_EDIT_USER in scopes,
        'canEditGlobal': CAL_EDIT_GLOBAL in scopes,
        'canDeleteUser': CAL_DELETE_USER in scopes,
        'canDeleteGlobal': CAL_DELETE_GLOBAL in scopes,
    }


def is_allowed(action, capabilities, is_global, is_owner):
    """
    Global reminders, and reminders owned by someone else, need the *-global
    capability. A caller's own personal reminder needs the *-user capability.
    """
    user_cap, global_cap = _ACTION_CAPABILITIES[action]
    if is_global or not is_owner:
        return bool(capabilities.get(global_cap))
    return bool(capabilities.get(user_cap))


def can_add_any(capabilities):
    return bool(capabilities.get('canAddUser') or capabilities.get('canAddGlobal'))


def require(action, capabilities, is_global, is_owner, message=None):
    if not is_allowed(action, capabilities, is_global, is_owner):
        raise PermissionDeniedError(message or f'Forbidden: Cannot {action} this reminder')
