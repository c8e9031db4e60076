# SPDX-License-Identifier: Apache-2.0

"""
Health endpoint.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

health_tag = Tag(name="Health", description="System health and status")
health_bp = APIBlueprint('health', __name__, abp_tags=[health_tag])


@health_bp.get('/health')
def health_check():
    """Dependency health; 503 when the case store is down."""
    health_data = current_app.health_service.get_health()

    status_code = 503 if health_data["status"] == "unhealthy" else 200
    health_data["_links"] = {
        "self": {"href": f"{current_app.config['BASE_URL']}/health"},
        "grievances": {"href": f"{current_app.config['BASE_URL']}/api/grievances"}
    }

    return jsonify(health_data), status_code
