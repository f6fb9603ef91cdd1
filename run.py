from site_digest.main import create_app
from site_digest.utils.config import get_config
from site_digest.utils.logging_config import get_logger

app = create_app()

if __name__ == '__main__':
    logger = get_logger()
    logger.info("Site Digest Tool startup")

    config = get_config()
    app.run(host=config.app.host, port=config.app.port, debug=config.app.debug)
