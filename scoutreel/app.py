"""Flask entrypoint.

Builds the app, wires CORS and error handlers, initializes the ledger store
and registers all blueprints.
"""

from __future__ import annotations

import re

from flask import Flask, g
from flask_cors import CORS

from scoutreel.config import config


def create_app(ledger_store=None, dispatcher=None, identity_service=None) -> Flask:
    """
    Build the Flask app.

    Explicit collaborators replace the configured ones (used by tests and
    local tooling); otherwise the database is checked and the store is built
    from config.
    """
    app = Flask(__name__)

    if config.ALLOW_ALL_ORIGINS:
        origins = [re.compile(r".*")]
    else:
        origins = config.ALLOWED_ORIGINS

    CORS(
        app,
        resources={r"/api/*": {"origins": origins}},
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=["Content-Type"],
        methods=["GET", "POST", "PATCH", "OPTIONS"],
    )

    @app.before_request
    def _identity_default():
        g.account_id = None
        g.email = None

    from scoutreel.services.dispatch_service import set_dispatcher
    from scoutreel.services.identity_service import set_identity_service
    from scoutreel.services.ledger_store import init_ledger_store

    if ledger_store is not None:
        init_ledger_store(ledger_store)
    else:
        from scoutreel.db import USE_DB, init_db

        if USE_DB:
            init_db()
        init_ledger_store()

    if dispatcher is not None:
        set_dispatcher(dispatcher)
    if identity_service is not None:
        set_identity_service(identity_service)

    from scoutreel.routes import register_blueprints
    from scoutreel.utils.error_handlers import register_error_handlers

    register_blueprints(app)
    register_error_handlers(app)

    for warning in config.validate():
        print(f"[APP] Warning: {warning}")

    return app


if __name__ == "__main__":
    config.log_summary()
    create_app().run(host=config.HOST, port=config.PORT, debug=config.IS_DEV)
