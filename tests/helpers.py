from datetime import datetime

import pytz

ALL_SCOPES = 'cal:read,cal:add:user,cal:add:global,cal:edit:user,cal:edit:global,cal:delete:user,cal:delete:global'
USER_SCOPES = 'cal:read,cal:add:user,cal:edit:user,cal:delete:user'
SHARED_KEY = 'test-shared-key'


def auth_headers(user):
    return {'X-API-Key': SHARED_KEY, 'X-User-Id': str(user.id)}


def utc_today():
    return datetime.now(pytz.UTC).date()
