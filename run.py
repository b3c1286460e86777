"""
LashClub platform entry point.
"""
import os
import sys

from app.utils.logging_config import get_logger

logger = get_logger('lashclub')

# Default to production for container deployment
config_name = os.getenv('FLASK_ENV', 'production')

try:
    from app import create_app
    app = create_app(config_name)
    logger.info(f"[LashClub] Config: {config_name}, routes: {len(list(app.url_map.iter_rules()))}")
except Exception as e:
    logger.exception(f"[LashClub] FATAL ERROR during app creation: {e}")
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
