"""
FinanceApp - Development Launcher
Configures logging, builds the Flask app and starts the server.
"""
import logging

from financeapp import create_app
from financeapp.config import Config

if __name__ == '__main__':
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    logger = logging.getLogger('financeapp.launcher')

    logger.info("=" * 60)
    logger.info(" FinanceApp API")
    logger.info("=" * 60)

    app = create_app()
    logger.info("Server running at http://%s:%s/api", Config.HOST, Config.PORT)
    logger.info("Press Ctrl+C to stop the server")

    app.run(host=Config.HOST, port=Config.PORT, debug=False)
