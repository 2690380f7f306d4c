"""
Development server: `python -m api`.
Production runs create_app() behind a WSGI server (gunicorn/uwsgi) instead.
"""
import os

from . import create_app

app = create_app(os.getenv("APP_ENV"))

if __name__ == "__main__":
    app.run(
        host=os.getenv("FLASK_RUN_HOST", "0.0.0.0"),
        port=int(os.getenv("FLASK_RUN_PORT", "8000")),
        debug=app.config.get("DEBUG", False),
    )
