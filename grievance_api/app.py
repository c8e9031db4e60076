"""
Community Grievance API - Flask Application Factory

This module builds the Flask application with OpenAPI 3.0 support, wires the
workflow engine, authentication and health services, and registers routes
and error handlers.
"""

import os
from flask_openapi3 import OpenAPI, Info

from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .middleware.auth import AuthMiddleware
from .middleware.error_handler import register_error_handlers
from .routes.grievances import grievances_bp
from .routes.health import health_bp
from .services.auth import AuthService
from .services.health import HealthCheckService
from .services.redis import create_redis_service
from .services.workflow import create_workflow_engine

info = Info(
    title="Community Grievance API",
    version=os.getenv('SERVICE_VERSION', '1.0.0'),
    description="Grievance filing, mediation and resolution workflow with HAL affordances"
)


def create_app(engine=None, auth_service=None, redis_service=None):
    """
    Build the Flask application.

    Args:
        engine: Workflow engine; built from environment configuration when omitted
        auth_service: JWT service; built from environment configuration when omitted
        redis_service: Redis service shared by the token blocklist and realtime channels

    Returns:
        Configured Flask (OpenAPI) application
    """
    setup_observability()

    app = OpenAPI(__name__, info=info)
    add_observability_middleware(app)

    app.config['ENVIRONMENT'] = os.getenv('ENVIRONMENT', 'development')
    app.config['DEBUG'] = app.config['ENVIRONMENT'] == 'development'
    app.config['BASE_URL'] = os.getenv('BASE_URL', 'http://localhost:5000').rstrip('/')

    if engine is None:
        if redis_service is None:
            redis_service = create_redis_service()
        engine = create_workflow_engine(redis_service)

    auth_service = auth_service or AuthService()
    amqp_service = getattr(engine.notifier, 'amqp_service', None)

    app.workflow_engine = engine
    app.auth_service = auth_service
    app.redis_service = redis_service
    app.auth_middleware = AuthMiddleware(auth_service, redis_service)
    app.health_service = HealthCheckService(engine.store, redis_service, amqp_service)

    register_error_handlers(app)

    app.register_api(grievances_bp)
    app.register_api(health_bp)

    return app


if __name__ == '__main__':
    create_app().run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', '5000')),
        debug=os.getenv('ENVIRONMENT', 'development') == 'development'
    )
