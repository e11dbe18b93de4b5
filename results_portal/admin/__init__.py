from flask import Blueprint

bp = Blueprint('admin', __name__)

from results_portal.admin import routes
