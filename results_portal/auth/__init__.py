from flask import Blueprint

bp = Blueprint('auth', __name__)

from results_portal.auth import routes
