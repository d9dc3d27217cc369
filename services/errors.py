"""
Launcher error taxonomy.

Every error carries the HTTP status the API layer answers with, so route
handlers can raise or propagate them without mapping each case by hand.
"""


class LauncherError(Exception):
    """Base class for errors reported back to the caller"""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self, settings=None):
        return {'success': False, 'error': self.message}


class ValidationError(LauncherError):
    """Malformed runtime, db type, port range or metadata input"""
    status_code = 400


class NotFoundError(LauncherError):
    status_code = 404


class ConflictError(LauncherError):
    """Operation does not fit the current instance state"""
    status_code = 409


class PortsExhaustedError(LauncherError):
    """No free port left in any configured range"""
    status_code = 503

    def __init__(self, message='No available port in the configured port ranges'):
        super().__init__(message)


class RuntimeEngineError(LauncherError):
    """The container engine exited non-zero"""
    status_code = 500

    def __init__(self, message, stderr='', instance=None):
        super().__init__(message)
        self.stderr = stderr
        self.instance = instance

    def to_dict(self, settings=None):
        data = super().to_dict(settings)
        if self.instance is not None:
            data['instance'] = self.instance.to_dict(settings)
        return data


class TemplateRenderError(LauncherError):
    """A descriptor template could not be fully rendered"""
    status_code = 500
