"""Error taxonomy for the reminder engine. Each carries the HTTP status it maps to."""


class HubError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ValidationError(HubError):
    status_code = 400


class NotFoundError(HubError):
    status_code = 404


class PermissionDeniedError(HubError):
    status_code = 403


class InvalidStateError(HubError):
    status_code = 409


class DeliveryError(HubError):
    status_code = 502

    def __init__(self, message, status=None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


class StorageError(HubError):
    status_code = 500
