"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: MIT-0
"""
import logging
import os

from flask import Flask

from .config import Settings, settings
from .routes import create_routes

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("resource-defaults-webhook")


def create_app(app_settings: Settings | None = None) -> Flask:
    app_settings = app_settings or settings
    policy = app_settings.policy
    if not policy.namespace:
        if app_settings.app_env != "test":
            raise RuntimeError("NAMESPACE is required but not set")
        log.warning("NAMESPACE not set in test env; only namespace-less requests match")
    if not policy.defaults.configured():
        log.warning("No resource defaults configured; pods will never be patched")

    if policy.selector is not None and policy.selector.empty:
        log.warning("LABEL_SELECTOR has no requirements; every pod in the namespace matches")

    app = Flask(__name__)
    app.register_blueprint(create_routes(app_settings))
    log.info(
        "Webhook configured for namespace=%r selector=%r label=%r patch_strategy=%s",
        policy.namespace,
        policy.selector.expression if policy.selector else "",
        f"{policy.label_key}={policy.label_value}" if policy.label_key else "",
        app_settings.patch_strategy,
    )
    return app


app = create_app()

if __name__ == "__main__":
    log.info("Starting webhook server...")
    app.run(
        host="0.0.0.0",
        port=settings.port,
        ssl_context=(settings.tls_cert_file, settings.tls_key_file),
    )
