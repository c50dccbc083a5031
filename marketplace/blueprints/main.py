"""Liveness endpoints for the load balancer and dispatch monitoring."""
import logging
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from marketplace.database import get_session

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """200 when the order database answers, 500 otherwise."""
    session = get_session()
    try:
        session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[HEALTH] Database check failed: {e}")
        return jsonify({'status': 'unhealthy', 'database': 'disconnected'}), 500
    return jsonify({'status': 'healthy', 'database': 'connected'})


@main_bp.route('/health/cache')
def health_cache():
    """
    Promotion cache status. Always 200: carts and checkout fall back to the
    database when Redis is down, so an outage only degrades the service.
    """
    from marketplace.services.cache_service import get_cache
    cache = get_cache()

    if not cache.is_available():
        return jsonify({'status': 'degraded', 'cache': 'unavailable'})

    cache.set('system', 'health', 'check', {'ok': True}, ttl=10)
    if (cache.get('system', 'health', 'check') or {}).get('ok'):
        return jsonify({'status': 'ok', 'cache': 'connected'})
    return jsonify({'status': 'degraded', 'cache': 'failing'})
