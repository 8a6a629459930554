# routes/__init__.py
"""
Blueprint registration helper
"""

def register_blueprints(app):
    """Register all application blueprints"""
    from routes.health import health_bp
    from routes.auth import auth_bp
    from routes.events import events_bp
    from routes.playlists import playlists_bp
    from routes.music import music_bp
    from routes.users import users_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(playlists_bp)
    app.register_blueprint(music_bp)
    app.register_blueprint(users_bp)
