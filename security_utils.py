"""
Security utilities for the launcher agent
Provides the CORS allow-list and security headers
"""

from flask import request, current_app


def parse_allowed_origins(value):
    """Comma separated WEB_ORIGIN value as a set of origins"""
    if not value:
        return set()
    return {origin.strip().rstrip('/') for origin in value.split(',') if origin.strip()}


class SecurityHeaders:
    """Security headers middleware"""

    @staticmethod
    def add_security_headers(response):
        """Add security headers to response"""
        # Prevent clickjacking
        response.headers['X-Frame-Options'] = 'DENY'

        # Prevent MIME type sniffing
        response.headers['X-Content-Type-Options'] = 'nosniff'

        # Referrer policy
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        # JSON API only
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none';"

        return response


class CORSPolicy:
    """Reflects the Origin header only for allow-listed browser origins"""

    ALLOWED_METHODS = 'GET, POST, PUT, DELETE, OPTIONS'
    ALLOWED_HEADERS = 'Content-Type'
    MAX_AGE = '600'

    def __init__(self, allowed_origins):
        self.allowed_origins = set(allowed_origins)

    def is_allowed(self, origin):
        return bool(origin) and origin.rstrip('/') in self.allowed_origins

    def preflight(self):
        """Answer OPTIONS preflight requests before routing"""
        if request.method != 'OPTIONS' or 'Access-Control-Request-Method' not in request.headers:
            return None
        response = current_app.make_default_options_response()
        return self.add_cors_headers(response)

    def add_cors_headers(self, response):
        origin = request.headers.get('Origin')
        if not self.is_allowed(origin):
            return response

        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Methods'] = self.ALLOWED_METHODS
        response.headers['Access-Control-Allow-Headers'] = self.ALLOWED_HEADERS
        response.headers['Access-Control-Max-Age'] = self.MAX_AGE
        response.vary.add('Origin')
        return response


def init_security(app):
    """Initialize security features for the Flask app"""

    cors = CORSPolicy(parse_allowed_origins(app.config.get('WEB_ORIGIN')))

    @app.before_request
    def handle_preflight():
        return cors.preflight()

    # Add CORS and security headers to all responses
    @app.after_request
    def add_security_headers(response):
        response = cors.add_cors_headers(response)
        return SecurityHeaders.add_security_headers(response)

    # Log rejected browser origins
    @app.before_request
    def log_security_events():
        origin = request.headers.get('Origin')
        if origin and not cors.is_allowed(origin):
            app.logger.warning(
                f"Request from non-allowed origin {origin} "
                f"({request.remote_addr}) on {request.path}"
            )

    app.logger.info(f"Security features initialized (origins: {', '.join(sorted(cors.allowed_origins))})")
