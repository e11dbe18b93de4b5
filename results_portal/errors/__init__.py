from flask import Blueprint

bp = Blueprint('errors', __name__)

from results_portal.errors import handlers
