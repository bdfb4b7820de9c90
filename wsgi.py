"""WSGI entry point for local development and production WSGI servers.

This module provides a standard WSGI application that can be used with
development servers (Flask's built-in) or production WSGI servers (Gunicorn).
"""

import os
import sys

# Load environment variables before importing app
from dotenv import load_dotenv

load_dotenv()  # Loads .env file

# Ensure FLASK_ENV is set
if "FLASK_ENV" not in os.environ:
    os.environ["FLASK_ENV"] = "development"
    print(f"FLASK_ENV not set, defaulting to: {os.environ['FLASK_ENV']}", file=sys.stderr)

# Import app after environment is set
from receipt_verification import create_app  # noqa: E402

# Create the application instance
app = create_app()
application = app  # This maintains WSGI compatibility


if __name__ == "__main__":
    # Local development server
    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "5000"))

    application.run(host=host, port=port, debug=app.debug)
