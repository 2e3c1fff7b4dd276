import logging
import os


class Config:
    # Defaults to a SQLite file next to the package; any SQLAlchemy URL works.
    BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    DATABASE_URL = os.getenv('DATABASE_URL') or 'sqlite:///' + os.path.join(BASE_DIR, 'allocation.db')
    # Comma-separated list, e.g. 'localhost:9092'. Empty means no broker: the
    # HTTP service still runs but nothing leaves the process.
    KAFKA_BOOTSTRAP_SERVERS = os.getenv('KAFKA_BOOTSTRAP_SERVERS', '')
    KAFKA_GROUP_ID = os.getenv('KAFKA_GROUP_ID', 'allocation')
    # Channel (topic) names of the external bridge
    ALLOCATED_CHANNEL = os.getenv('ALLOCATED_CHANNEL', 'line_allocated')
    CHANGE_QUANTITY_CHANNEL = os.getenv('CHANGE_QUANTITY_CHANNEL', 'change_batch_quantity')
    # Seconds the listener waits for a message before checking for shutdown
    LISTENER_POLL_TIMEOUT = float(os.getenv('LISTENER_POLL_TIMEOUT', '1.0'))
    # Publishing handler retries; 0 registers the handler without a retry wrapper
    PUBLISH_RETRIES = int(os.getenv('PUBLISH_RETRIES', '3'))
    PUBLISH_RETRY_DELAY = float(os.getenv('PUBLISH_RETRY_DELAY', '0.5'))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    API_HOST = os.getenv('API_HOST', '127.0.0.1')
    API_PORT = int(os.getenv('API_PORT', '5005'))

    @property
    def kafka_servers(self):
        return [s.strip() for s in self.KAFKA_BOOTSTRAP_SERVERS.split(',') if s.strip()]


def get_config() -> Config:
    return Config()


def configure_logging(level: str = 'INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
