"""
ZoguOne Field Service Application

Multi-tenant JSON API for field-service companies: customers, inventory,
invoices and quotes, field visits, scheduling, team management and exports.

MODULAR ARCHITECTURE:
- app_init.py: App factory (logging, security, database, health checks)
- app/api/: HTTP route handlers (Flask Blueprints)
- services/: Business logic and repositories (SQLAlchemy)
- database/: Engine, session handling and ORM models
"""
import os
import logging

from app_init import create_app

logger = logging.getLogger(__name__)

app = create_app()


if __name__ == '__main__':
    # Production schemas are created via Alembic migrations
    # Run: alembic upgrade head
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting development server on port {port}")
    app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))
