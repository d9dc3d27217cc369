"""
Compose descriptor rendering.

Templates live in ``compose_templates/<runtime>/`` and use flat ``{{TOKEN}}``
placeholders. All conditional text (database service, credential env block,
depends_on, seed mount) is assembled here before substitution; templates
carry no logic.
"""

import logging
import os
import re

from services.errors import TemplateRenderError, ValidationError
from services.validators import RUNTIMES, validate_db_type

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'compose_templates')

COMPOSE_FILENAME = 'docker-compose.yml'
DOCKERFILE_FILENAME = 'Dockerfile'

# Tokens every template file must be given a value for
REQUIRED_KEYS = {
    COMPOSE_FILENAME: ('HOST_PORT', 'RUNTIME_VERSION', 'APP_ENV', 'DB_DEPENDS', 'MYSQL_SERVICE'),
    DOCKERFILE_FILENAME: ('RUNTIME_VERSION',),
}

DB_SEED_MOUNT = '      - ../pack/db/init.sql:/docker-entrypoint-initdb.d/init.sql:ro'
MYSQL_IMAGE = 'mysql:8'

_TOKEN_RE = re.compile(r'\{\{([A-Z0-9_]+)\}\}')


def template_path(runtime, filename, templates_dir=TEMPLATES_DIR):
    if runtime not in RUNTIMES:
        raise ValidationError(f'Unsupported runtime: {runtime}')
    return os.path.join(templates_dir, runtime, filename)


def render(template, values, required=()):
    """
    Flat token substitution.

    Raises:
        TemplateRenderError: a required key has no value, or a placeholder
            is still present after substitution
    """
    missing = [key for key in required if values.get(key) is None]
    if missing:
        raise TemplateRenderError(f"Missing template values: {', '.join(missing)}")

    output = template
    for key, value in values.items():
        output = output.replace('{{' + key + '}}', str(value))

    leftover = sorted(set(_TOKEN_RE.findall(output)))
    if leftover:
        raise TemplateRenderError(f"Unresolved template tokens: {', '.join(leftover)}")
    return output


def build_compose_values(params):
    """Assemble the conditional compose blocks for the given parameters"""
    db_type = params['db_type']
    validate_db_type(db_type)

    values = {
        'HOST_PORT': params['host_port'],
        'RUNTIME_VERSION': params['runtime_version'],
        'APP_ENV': '',
        'DB_DEPENDS': '',
        'MYSQL_SERVICE': '',
    }
    if db_type != 'mysql':
        return values

    root_password = params.get('db_root_password') or ''
    db_name = params.get('db_database') or 'ctf'
    app_user = params.get('db_user') or 'root'
    app_password = root_password if app_user == 'root' else (params.get('db_password') or '')

    values['APP_ENV'] = '\n'.join([
        '    environment:',
        '      MYSQL_HOST: db',
        f'      MYSQL_USER: {app_user}',
        f'      MYSQL_PASSWORD: {app_password}',
        f'      MYSQL_DATABASE: {db_name}',
    ])
    values['DB_DEPENDS'] = '\n'.join([
        '    depends_on:',
        '      - db',
    ])

    mysql_env = [
        f'      MYSQL_ROOT_PASSWORD: {root_password}',
        f'      MYSQL_DATABASE: {db_name}',
    ]
    if app_user != 'root':
        mysql_env.append(f'      MYSQL_USER: {app_user}')
        mysql_env.append(f'      MYSQL_PASSWORD: {app_password}')

    lines = [
        '  db:',
        f'    image: {MYSQL_IMAGE}',
        '    environment:',
        *mysql_env,
        '    volumes:',
        '      - ../mysql-data:/var/lib/mysql',
    ]
    if params.get('db_init_exists'):
        lines.append(DB_SEED_MOUNT)
    values['MYSQL_SERVICE'] = '\n'.join(lines)

    return values


def write_compose_files(target_dir, params, templates_dir=TEMPLATES_DIR):
    """
    Render docker-compose.yml and Dockerfile into target_dir.

    Args:
        target_dir: destination directory (created if missing)
        params: dict with runtime, runtime_version, host_port, db_type and,
            for mysql, db_root_password, db_database, db_user, db_password,
            db_init_exists
    """
    runtime = params['runtime']
    compose_template_path = template_path(runtime, COMPOSE_FILENAME, templates_dir)
    dockerfile_template_path = template_path(runtime, DOCKERFILE_FILENAME, templates_dir)

    with open(compose_template_path, 'r', encoding='utf-8') as f:
        compose_template = f.read()
    with open(dockerfile_template_path, 'r', encoding='utf-8') as f:
        dockerfile_template = f.read()

    compose = render(
        compose_template,
        build_compose_values(params),
        REQUIRED_KEYS[COMPOSE_FILENAME],
    )
    dockerfile = render(
        dockerfile_template,
        {'RUNTIME_VERSION': params['runtime_version']},
        REQUIRED_KEYS[DOCKERFILE_FILENAME],
    )

    os.makedirs(target_dir, exist_ok=True)
    with open(os.path.join(target_dir, COMPOSE_FILENAME), 'w', encoding='utf-8') as f:
        f.write(compose)
    with open(os.path.join(target_dir, DOCKERFILE_FILENAME), 'w', encoding='utf-8') as f:
        f.write(dockerfile)

    logger.debug(f"Rendered {runtime} descriptors into {target_dir} (port {params['host_port']})")
