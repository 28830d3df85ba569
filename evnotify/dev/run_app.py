from __future__ import annotations

import signal
import sys
import threading

import structlog

from evnotify.bootstrap import build_app_system
from evnotify.config.logging import add_context, configure_logging

logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Start the notification service and block until interrupted.

    Notes
    -----
    - Loads configuration from `config.yaml` by default.
    - Optional CLI usage:
        python -m evnotify.dev.run_app --config path/to/config.yaml
    """
    config_path = None
    if "--config" in sys.argv:
        i = sys.argv.index("--config")
        if i + 1 < len(sys.argv):
            config_path = sys.argv[i + 1]

    wiring = build_app_system(config_path=config_path)
    configure_logging(wiring.config.log_level)
    add_context(service="evnotify")

    done = threading.Event()

    def _request_stop(signum, frame) -> None:
        done.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    wiring.runtime.start()
    logger.info(
        "Notification service started",
        config=str(wiring.config.path),
        events_host=wiring.config.transport.host,
        events_port=wiring.config.transport.port,
    )

    done.wait()

    # Runtime stop drains subscriber tasks, which still queue mails
    wiring.runtime.stop()
    wiring.mailer.stop()
    logger.info("Notification service stopped")


if __name__ == "__main__":
    main()
