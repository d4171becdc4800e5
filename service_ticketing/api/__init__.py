"""Flask blueprints making up the HTTP API."""

from flask import Flask

from . import admin_routes, auth_routes, cron_routes, customer_routes, notification_routes, partner_routes

BLUEPRINTS = (
    auth_routes.bp,
    customer_routes.bp,
    partner_routes.bp,
    admin_routes.bp,
    notification_routes.bp,
    cron_routes.bp,
)


def register_blueprints(flask_app: Flask) -> None:
    for blueprint in BLUEPRINTS:
        flask_app.register_blueprint(blueprint)
