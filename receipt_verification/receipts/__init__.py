"""Receipt verification API blueprint."""

from flask import Blueprint

bp = Blueprint("receipts", __name__)

# Import routes to register them with the blueprint
from . import routes  # noqa: E402, F401
