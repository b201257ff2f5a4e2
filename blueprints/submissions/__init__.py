from .routes import bp
