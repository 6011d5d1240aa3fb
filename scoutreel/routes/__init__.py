"""
Routes package for the ScoutReel backend.
Contains Flask Blueprints for the API namespaces.
"""

__all__ = [
    "register_blueprints",
]


def _print_route_map(app):
    """Print all registered /api/* routes at startup for debugging."""
    api_routes = []
    for rule in app.url_map.iter_rules():
        if rule.rule.startswith("/api"):
            methods = ",".join(sorted(m for m in rule.methods if m not in ("HEAD", "OPTIONS")))
            api_routes.append(f"  {methods:8s} {rule.rule}")

    api_routes.sort(key=lambda x: x.split()[-1])

    print("[ROUTES] Registered API endpoints:")
    for route in api_routes:
        print(route)
    print(f"[ROUTES] Total: {len(api_routes)} endpoints")


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    from scoutreel.routes.health import bp as health_bp
    from scoutreel.routes.scraping import bp as scraping_bp
    from scoutreel.routes.video import bp as video_bp
    from scoutreel.routes.jobs import bp as jobs_bp
    from scoutreel.routes.profiles import bp as profiles_bp
    from scoutreel.routes.credits import bp as credits_bp
    from scoutreel.routes.admin import bp as admin_bp

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(scraping_bp, url_prefix="/api")
    app.register_blueprint(video_bp, url_prefix="/api/video")
    app.register_blueprint(jobs_bp, url_prefix="/api/jobs")
    app.register_blueprint(profiles_bp, url_prefix="/api/profiles")
    app.register_blueprint(credits_bp, url_prefix="/api/credits")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    if app.debug:
        _print_route_map(app)
