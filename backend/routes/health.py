# routes/health.py
from flask import Blueprint, jsonify
import logging
import time

from service_registry import get_services

logger = logging.getLogger(__name__)
health_bp = Blueprint('health', __name__)

@health_bp.route('/health', methods=['GET'])
def health_check():
    """Health check: database connectivity and pool statistics"""
    health_status = {
        'status': 'unknown',
        'database': 'unknown',
        'pool_stats': None,
        'timestamp': time.time()
    }

    try:
        details = get_services().store.health()

        health_status['status'] = 'healthy'
        health_status['database'] = 'connected'
        health_status.update(details)

        return jsonify(health_status), 200

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        health_status['status'] = 'unhealthy'
        health_status['database'] = f'error: {str(e)}'
        return jsonify(health_status), 503
