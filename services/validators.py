"""
Validation utilities for challenge metadata and settings input.

Every function raises ValidationError with a message that can be shown to
the operator as-is.
"""

from services.errors import ValidationError

RUNTIMES = ('php', 'flask')
DB_TYPES = ('none', 'mysql')
HOST_SCHEMES = ('http', 'https')

# Port the application listens on inside its container
CONTAINER_PORTS = {
    'php': 80,
    'flask': 8000,
}


def validate_runtime(value):
    if value not in RUNTIMES:
        raise ValidationError(
            f"Invalid runtime: '{value}'. Expected one of: {', '.join(RUNTIMES)}"
        )
    return value


def validate_db_type(value):
    if value not in DB_TYPES:
        raise ValidationError(
            f"Invalid db_type: '{value}'. Expected one of: {', '.join(DB_TYPES)}"
        )
    return value


def validate_host_scheme(value):
    if value not in HOST_SCHEMES:
        raise ValidationError(
            f"Invalid host_scheme: '{value}'. Expected http or https"
        )
    return value


def validate_challenge_metadata(metadata):
    """
    Validate registration metadata.

    Args:
        metadata: mapping with name, runtime, runtime_version, db_type

    Returns:
        dict with the four fields stripped and validated
    """
    if not isinstance(metadata, dict):
        raise ValidationError('metadata is required')

    fields = {}
    for key in ('name', 'runtime', 'runtime_version', 'db_type'):
        value = metadata.get(key)
        fields[key] = str(value).strip() if value is not None else ''

    missing = [key for key, value in fields.items() if not value]
    if missing:
        raise ValidationError(f"metadata is missing: {', '.join(missing)}")

    validate_runtime(fields['runtime'])
    validate_db_type(fields['db_type'])
    return fields


def validate_mysql_credentials(root_password, database, user, password):
    """
    Validate MySQL credentials from a settings update.

    When the app user is ``root`` the app password always mirrors the root
    password.

    Returns:
        dict with mysql_root_password, mysql_database, mysql_user, mysql_password
    """
    root_password = str(root_password or '').strip()
    database = str(database or '').strip()
    user = str(user or '').strip()
    password = str(password or '').strip()

    if not root_password or not database or not user:
        raise ValidationError('MySQL root password, database and user are required')
    if user == 'root':
        password = root_password
    if not password:
        raise ValidationError('MySQL password is required for a non-root user')

    return {
        'mysql_root_password': root_password,
        'mysql_database': database,
        'mysql_user': user,
        'mysql_password': password,
    }


def parse_tail(value, default, maximum):
    """Parse the ``tail`` query parameter of the logs endpoint"""
    if value is None or value == '':
        return default
    try:
        tail = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid tail: '{value}'")
    if tail < 1 or tail > maximum:
        raise ValidationError(f'tail must be between 1 and {maximum}')
    return tail
